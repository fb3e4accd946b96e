"""
Sign-and-send transactor.

One Transactor owns one account and one nonce sequence. Concurrent callers
on the same transactor are serialised; separate scenarios must each build
their own transactor so their nonces never collide.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from eth_account import Account
from eth_account.signers.base import BaseAccount
from web3.exceptions import ContractLogicError, Web3Exception

from .client import ChainClient
from .exceptions import TransactionError
from .gas import GasPricer, PriorityTier, StaticGasPricer, to_priority_tier
from .models import TxReceipt

DEFAULT_GAS_LIMIT = 2000000


@dataclass
class TransactOptions:
    """
    Per-transaction options.

    Attributes:
        gas_limit: Explicit gas limit; estimated when None
        value: Wei attached to the transaction
        priority: Gas price tier; the transactor default when None
        gas_price: Explicit gas price, bypasses the tier lookup
    """
    gas_limit: Optional[int] = None
    value: int = 0
    priority: Optional[Union[PriorityTier, int]] = None
    gas_price: Optional[int] = None


class Transactor:
    """
    Builds, signs and broadcasts transactions for one account.

    Args:
        client: Chain client used for nonces, broadcasting and receipts
        private_key: Hex private key (optional if account provided)
        account: eth-account account (optional if private_key provided)
        gas_pricer: Tier-to-price strategy, static by default
        default_priority: Tier used when options carry none
        receipt_timeout: Seconds to wait for a receipt
        poll_interval: Receipt polling interval in seconds
        logger: Optional logger instance
    """

    def __init__(
        self,
        client: ChainClient,
        private_key: Optional[str] = None,
        account: Optional[BaseAccount] = None,
        gas_pricer: Optional[GasPricer] = None,
        default_priority: PriorityTier = PriorityTier.MEDIUM,
        receipt_timeout: float = 120,
        poll_interval: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ):
        if not private_key and account is None:
            raise ValueError("Either private_key or account must be provided")

        self.client = client
        self.account: BaseAccount = account if account is not None else Account.from_key(private_key)
        self.gas_pricer = gas_pricer or StaticGasPricer()
        self.default_priority = default_priority
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

        self._lock = threading.RLock()
        self._nonce: Optional[int] = None

    @property
    def address(self) -> str:
        return self.account.address

    def _next_nonce(self) -> int:
        if self._nonce is None:
            self._nonce = self.client.get_transaction_count(self.address)
        nonce = self._nonce
        self._nonce += 1
        return nonce

    def _estimate_gas(self, call, params: Dict[str, Any]) -> int:
        try:
            gas = call.estimate_gas(params)
            # Add 10% buffer to gas estimate
            gas = int(gas * 1.1)
            self.logger.debug(f"Estimated gas: {gas}")
            return gas
        except ContractLogicError as e:
            self.logger.error(f"Transaction would revert: {e}")
            raise TransactionError(f"Transaction would revert: {e}") from e
        except Exception as e:
            self.logger.warning(f"Gas estimation failed, using default: {DEFAULT_GAS_LIMIT}. Error: {e}")
            return DEFAULT_GAS_LIMIT

    def gas_price_for(self, opts: TransactOptions) -> int:
        """Gas price the transactor will attach for the given options."""
        if opts.gas_price is not None:
            return opts.gas_price
        tier = self.default_priority if opts.priority is None else to_priority_tier(opts.priority)
        return self.gas_pricer.suggest_gas_price(tier)

    def send(self, call, opts: Optional[TransactOptions] = None) -> str:
        """
        Sign and broadcast a contract call or constructor.

        Args:
            call: web3 ContractFunction or ContractConstructor
            opts: Transaction options

        Returns:
            Transaction hash as hex string

        Raises:
            TransactionError: If building, signing or sending fails
        """
        opts = opts or TransactOptions()

        with self._lock:
            params: Dict[str, Any] = {
                "from": self.address,
                "value": opts.value,
                "gasPrice": self.gas_price_for(opts),
                "chainId": self.client.chain_id,
            }
            params["gas"] = opts.gas_limit or self._estimate_gas(call, dict(params))
            params["nonce"] = self._next_nonce()

            try:
                tx = call.build_transaction(params)
                signed_tx = self.account.sign_transaction(tx)
            except Exception as e:
                self._nonce = None
                self.logger.error(f"Transaction signing failed: {e}")
                raise TransactionError(f"Failed to sign transaction: {str(e)}") from e

            try:
                tx_hash = self.client.send_raw_transaction(signed_tx.rawTransaction)
            except (Web3Exception, ValueError) as e:
                # the node did not take the nonce, resync on next send
                self._nonce = None
                self.logger.error(f"Failed to send transaction: {e}")
                raise TransactionError(f"Failed to send transaction: {str(e)}") from e

        self.logger.info(f"Transaction sent: {tx_hash}")
        return tx_hash

    def wait(self, tx_hash: str) -> TxReceipt:
        """
        Wait for a transaction to be mined and check its status.

        Raises:
            TransactionError: If the transaction reverted or the wait timed out
        """
        try:
            receipt = self.client.wait_for_receipt(
                tx_hash, timeout=self.receipt_timeout, poll_latency=self.poll_interval
            )
        except Web3Exception as e:
            raise TransactionError(f"No receipt for {tx_hash}: {e}", tx_hash=tx_hash) from e
        if receipt.status != 1:
            raise TransactionError(f"Transaction {tx_hash} reverted", tx_hash=tx_hash)
        return receipt

    def transact(self, call, opts: Optional[TransactOptions] = None) -> TxReceipt:
        """Send a transaction and wait until it is mined successfully."""
        return self.wait(self.send(call, opts))

    def deploy(self, constructor, opts: Optional[TransactOptions] = None) -> str:
        """
        Deploy a contract and return its address.

        Raises:
            TransactionError: If the deployment fails or yields no address
        """
        receipt = self.transact(constructor, opts)
        if not receipt.contract_address:
            raise TransactionError(f"Deployment {receipt.tx_hash} returned no contract address",
                                   tx_hash=receipt.tx_hash)
        return receipt.contract_address

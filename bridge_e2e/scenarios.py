"""
End-to-end scenarios for a two-chain bridge environment.

Chain A is always the source and chain B the destination. Each scenario
submits one deposit on chain A, checks the gas price the deposit was sent
with, waits for the relayers to execute the proposal on chain B and then
verifies the resulting state on both chains.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Tuple

from eth_account import Account
from eth_account.signers.base import BaseAccount
from web3 import Web3

from .client import ChainClient
from .config import E2ESettings
from .contracts import ArtifactStore, AssetStoreContract, ERC20Contract, ERC721Contract
from .deposit import erc20_intent, erc721_intent, generic_intent, submit_deposit
from .exceptions import ConfigurationError, VerificationMismatchError
from .finality import wait_for_proposal_executed
from .fixtures import KeyRing
from .gas import PriorityTier, StaticGasPricer
from .models import ChainEnvironmentConfig, DepositIntent
from .provision import provision
from .resources import AssetClass
from .transactor import TransactOptions, Transactor
from .verify import (
    assert_asset_not_stored, assert_token_absent, assert_token_owner, fungible_snapshot,
    verify_fungible_transfer, verify_generic_transfer, verify_non_fungible_transfer,
)

logger = logging.getLogger(__name__)

ERC20_DEPOSIT_AMOUNT = 1000000
ERC721_TOKEN_ID = 1
ERC721_METADATA = "metadata.url"
GENERIC_DEPOSIT_DATA = Web3.solidity_keccak(["int64"], [1])


@dataclass(frozen=True)
class ScenarioResult:
    """Outcome of one successful scenario"""
    name: str
    tx_hash: str
    gas_price: int
    dest_from_block: int


class BridgeScenarioSuite:
    """
    Provisions two chains and runs the deposit scenarios between them.

    Args:
        chain_a: Client of the source chain
        chain_b: Client of the destination chain
        keyring: Accounts available to the scenarios
        settings: Run configuration
        artifacts: Contract artifacts; read from settings.artifacts_dir when None
        deployer: Key ring name of the deployer when settings carry no private keys
        recipient: Key ring name of the destination account
    """

    def __init__(
        self,
        chain_a: ChainClient,
        chain_b: ChainClient,
        keyring: KeyRing,
        settings: Optional[E2ESettings] = None,
        artifacts: Optional[ArtifactStore] = None,
        deployer: str = "Alice",
        recipient: str = "Bob",
    ):
        self.chain_a = chain_a
        self.chain_b = chain_b
        self.keyring = keyring
        self.settings = settings or E2ESettings()
        self.artifacts = artifacts
        self.gas_pricer = StaticGasPricer(self.settings.gas_tier_prices)

        self.account_a = self._deployer(self.settings.private_key_1, deployer)
        self.account_b = self._deployer(self.settings.private_key_2, deployer)
        self.recipient = keyring.address(recipient)

        self.config_a: Optional[ChainEnvironmentConfig] = None
        self.config_b: Optional[ChainEnvironmentConfig] = None

    def _deployer(self, private_key: Optional[str], name: str) -> BaseAccount:
        if private_key:
            return Account.from_key(private_key)
        return self.keyring[name]

    def _transactor(self, client: ChainClient, account: BaseAccount) -> Transactor:
        return Transactor(client, account=account, gas_pricer=self.gas_pricer)

    def _provision(self, client: ChainClient, account: BaseAccount, domain_id: int,
                   artifacts: ArtifactStore) -> ChainEnvironmentConfig:
        return provision(
            client,
            self._transactor(client, account),
            domain_id,
            mint_to=account.address,
            artifacts=artifacts,
            mpc_address=self.settings.mpc_address,
            parallel=self.settings.parallel_deploy,
        )

    def setup(self) -> Tuple[ChainEnvironmentConfig, ChainEnvironmentConfig]:
        """
        Provision both chains concurrently, one transactor per chain.

        Raises:
            DeploymentError: If provisioning of either chain fails
        """
        artifacts = self.artifacts or ArtifactStore(self.settings.artifacts_dir)
        with ThreadPoolExecutor(max_workers=2) as executor:
            future_a = executor.submit(self._provision, self.chain_a, self.account_a,
                                       self.settings.domain_id_1, artifacts)
            future_b = executor.submit(self._provision, self.chain_b, self.account_b,
                                       self.settings.domain_id_2, artifacts)
            self.config_a = future_a.result()
            self.config_b = future_b.result()
        return self.config_a, self.config_b

    def _require_setup(self) -> Tuple[ChainEnvironmentConfig, ChainEnvironmentConfig]:
        if self.config_a is None or self.config_b is None:
            raise ConfigurationError("Scenario suite is not set up; call setup() first")
        return self.config_a, self.config_b

    def _intent_defaults(self, asset_class: AssetClass, priority: PriorityTier) -> dict:
        config_a, _ = self._require_setup()
        return dict(
            resource_id=config_a.asset(asset_class).resource_id,
            recipient=self.recipient,
            dest_gas_price=self.settings.dest_gas_price,
            expiry=int(time.time()) + self.settings.expiry_window,
            from_domain_id=self.settings.domain_id_1,
            dest_domain_id=self.settings.domain_id_2,
            from_decimals=self.settings.token_decimals,
            dest_decimals=self.settings.ether_decimals,
            fee=self.settings.basic_fee,
            priority=priority,
        )

    def _check_gas_price(self, tx_hash: str, tier: PriorityTier) -> int:
        expected = self.gas_pricer.suggest_gas_price(tier)
        actual = int(self.chain_a.transaction_by_hash(tx_hash)["gasPrice"])
        if actual != expected:
            raise VerificationMismatchError(
                f"Deposit {tx_hash} was sent with gas price {actual}, expected {expected} for {tier.name}",
                expected=expected, actual=actual,
            )
        return actual

    def _relay(self, name: str, intent: DepositIntent, transactor: Transactor) -> ScenarioResult:
        """Submit on chain A, check the tier price and wait for execution on chain B."""
        config_a, config_b = self._require_setup()
        from_block = self.chain_b.latest_block()

        tx_hash = submit_deposit(config_a, intent, transactor)
        gas_price = self._check_gas_price(tx_hash, intent.priority)

        wait_for_proposal_executed(
            self.chain_b,
            config_b.bridge_address,
            from_block=from_block,
            timeout=self.settings.finality_timeout,
            poll_interval=self.settings.poll_interval,
            origin_domain_id=config_a.domain_id,
        )
        return ScenarioResult(name=name, tx_hash=tx_hash, gas_price=gas_price, dest_from_block=from_block)

    def erc20_deposit(self, amount: int = ERC20_DEPOSIT_AMOUNT,
                      priority: PriorityTier = PriorityTier.HIGH) -> ScenarioResult:
        """Fungible transfer: sender balance drops, recipient balance grows by the normalised amount."""
        config_a, config_b = self._require_setup()
        transactor = self._transactor(self.chain_a, self.account_a)
        source_token = ERC20Contract(self.chain_a, config_a.erc20_address)
        dest_token = ERC20Contract(self.chain_b, config_b.erc20_address)

        before = fungible_snapshot(source_token, dest_token, transactor.address, self.recipient)
        intent = erc20_intent(amount=amount, **self._intent_defaults(AssetClass.FUNGIBLE, priority))
        result = self._relay("erc20", intent, transactor)

        after = fungible_snapshot(source_token, dest_token, transactor.address, self.recipient)
        # fee data decimals are oracle factors; the delta follows the tokens themselves
        verify_fungible_transfer(before, after, amount, source_token.decimals(), dest_token.decimals())
        return result

    def erc721_deposit(self, token_id: int = ERC721_TOKEN_ID, metadata: str = ERC721_METADATA,
                       priority: PriorityTier = PriorityTier.LOW) -> ScenarioResult:
        """Non-fungible transfer: token burned on chain A and minted to the recipient on chain B."""
        config_a, config_b = self._require_setup()
        transactor = self._transactor(self.chain_a, self.account_a)
        source_token = ERC721Contract(self.chain_a, config_a.erc721_address, transactor)
        dest_token = ERC721Contract(self.chain_b, config_b.erc721_address)

        # the token must only exist on chain A before the deposit
        setup_opts = TransactOptions(priority=PriorityTier.HIGH)
        source_token.mint(token_id, metadata, transactor.address, setup_opts)
        source_token.approve(token_id, config_a.erc721_handler_address, setup_opts)
        assert_token_owner(source_token, token_id, transactor.address)
        assert_token_absent(dest_token, token_id)

        intent = erc721_intent(token_id=token_id, metadata=metadata,
                               **self._intent_defaults(AssetClass.NON_FUNGIBLE, priority))
        result = self._relay("erc721", intent, transactor)

        verify_non_fungible_transfer(source_token, dest_token, token_id, self.recipient)
        return result

    def generic_deposit(self, data: bytes = bytes(GENERIC_DEPOSIT_DATA),
                        priority: PriorityTier = PriorityTier.LOW) -> ScenarioResult:
        """Generic message: the deposited hash ends up in chain B's asset store."""
        config_a, config_b = self._require_setup()
        transactor = self._transactor(self.chain_a, self.account_a)
        asset_store = AssetStoreContract(self.chain_b, config_b.asset_store_address)

        assert_asset_not_stored(asset_store, data)
        intent = generic_intent(data=data, **self._intent_defaults(AssetClass.GENERIC, priority))
        result = self._relay("generic", intent, transactor)

        verify_generic_transfer(asset_store, data)
        return result

    def run_all(self):
        """Set up both chains if needed and run every scenario in order."""
        if self.config_a is None or self.config_b is None:
            self.setup()
        return [self.erc20_deposit(), self.erc721_deposit(), self.generic_deposit()]

"""
Chain client capabilities and the web3-backed implementation.

Components of the harness declare the smallest capability set they need
(see the protocols below) instead of depending on one monolithic client.
``ChainClient`` implements all of them on top of a single Web3 connection
and is safe to share between scenarios for read-only queries.
"""
import logging
import urllib.parse
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from web3 import Web3
from web3.types import TxReceipt as Web3TxReceipt

from .models import TxReceipt

HexBytesLike = Union[str, bytes]


class ContractProvider(Protocol):
    """Builds web3 contract objects"""

    def contract(self, address: Optional[str] = None, abi: Optional[Sequence[Dict[str, Any]]] = None,
                 bytecode: Optional[str] = None) -> Any:
        ...


class GasPriceClient(Protocol):
    """Reports the node's current gas price"""

    def gas_price(self) -> int:
        ...


class TransactionSender(Protocol):
    """Broadcasts signed transactions and waits for receipts"""

    chain_id: int

    def get_transaction_count(self, address: str) -> int:
        ...

    def send_raw_transaction(self, raw_tx: bytes) -> str:
        ...

    def wait_for_receipt(self, tx_hash: HexBytesLike, timeout: float = 120, poll_latency: float = 0.1) -> TxReceipt:
        ...


class LogFetcher(Protocol):
    """Reads block heights and event logs"""

    def latest_block(self) -> int:
        ...

    def fetch_event_logs(self, address: str, event_signature: str, start_block: int,
                         end_block: Optional[int] = None) -> List[Dict[str, Any]]:
        ...


class TransactionLookup(Protocol):
    """Looks transactions up by hash"""

    def transaction_by_hash(self, tx_hash: HexBytesLike) -> Dict[str, Any]:
        ...


def to_hex(value: HexBytesLike) -> str:
    """Render bytes or a hex string as a 0x-prefixed hex string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    return value if value.startswith("0x") else "0x" + value


def event_topic(event_signature: str) -> str:
    """Topic hash of an event signature such as ``Transfer(address,address,uint256)``."""
    return to_hex(bytes(Web3.keccak(text=event_signature)))


class ChainClient:
    """
    Web3 connection to one chain of the test environment.

    Args:
        rpc_url: JSON-RPC endpoint of the chain
        w3: Pre-built Web3 instance (takes precedence over rpc_url)
        request_timeout: HTTP timeout for JSON-RPC calls in seconds
        logger: Optional logger instance
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        w3: Optional[Web3] = None,
        request_timeout: int = 30,
        logger: Optional[logging.Logger] = None,
    ):
        if w3 is None and not rpc_url:
            raise ValueError("Either rpc_url or w3 must be provided")

        self.logger = logger or logging.getLogger(__name__)
        self.rpc_url = rpc_url

        if w3 is None:
            parsed = urllib.parse.urlparse(rpc_url)
            if parsed.scheme not in ("http", "https", "ws", "wss"):
                raise ValueError(f"rpc_url must be an http(s) or ws(s) URL (got: {rpc_url})")
            host = parsed.netloc.split(":")[0]
            if parsed.scheme == "http" and host not in ("localhost", "127.0.0.1"):
                self.logger.warning(f"Connecting to {host} over plain http")
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))

        self.w3 = w3
        self._chain_id: Optional[int] = None

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def contract(self, address: Optional[str] = None, abi: Optional[Sequence[Dict[str, Any]]] = None,
                 bytecode: Optional[str] = None):
        kwargs: Dict[str, Any] = {"abi": list(abi or [])}
        if address:
            kwargs["address"] = Web3.to_checksum_address(address)
        if bytecode:
            kwargs["bytecode"] = bytecode
        return self.w3.eth.contract(**kwargs)

    def gas_price(self) -> int:
        return int(self.w3.eth.gas_price)

    def get_transaction_count(self, address: str) -> int:
        return int(self.w3.eth.get_transaction_count(Web3.to_checksum_address(address), "pending"))

    def send_raw_transaction(self, raw_tx: bytes) -> str:
        tx_hash = self.w3.eth.send_raw_transaction(raw_tx)
        return to_hex(tx_hash)

    def wait_for_receipt(self, tx_hash: HexBytesLike, timeout: float = 120, poll_latency: float = 0.1) -> TxReceipt:
        receipt = self.w3.eth.wait_for_transaction_receipt(
            to_hex(tx_hash), timeout=timeout, poll_latency=poll_latency
        )
        return self._convert_receipt(receipt)

    def latest_block(self) -> int:
        return int(self.w3.eth.block_number)

    def fetch_event_logs(self, address: str, event_signature: str, start_block: int,
                         end_block: Optional[int] = None) -> List[Dict[str, Any]]:
        filter_params = {
            "address": Web3.to_checksum_address(address),
            "topics": [event_topic(event_signature)],
            "fromBlock": start_block,
            "toBlock": end_block if end_block is not None else "latest",
        }
        return [dict(log) for log in self.w3.eth.get_logs(filter_params)]

    def transaction_by_hash(self, tx_hash: HexBytesLike) -> Dict[str, Any]:
        return dict(self.w3.eth.get_transaction(to_hex(tx_hash)))

    def _convert_receipt(self, web3_receipt: Web3TxReceipt) -> TxReceipt:
        """
        Convert Web3 receipt to our TxReceipt model

        Args:
            web3_receipt: The Web3 transaction receipt

        Returns:
            Our TxReceipt model
        """
        receipt_dict = dict(web3_receipt)

        # Convert bytes to hex strings
        for key, value in list(receipt_dict.items()):
            if isinstance(value, (bytes, bytearray)):
                receipt_dict[key] = to_hex(bytes(value))

        receipt_dict["logs"] = [dict(log) for log in receipt_dict.get("logs", [])]
        return TxReceipt.model_validate(receipt_dict)

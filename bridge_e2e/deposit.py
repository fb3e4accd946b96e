"""
Deposit submission on the source-chain bridge.

The bridge takes the same four arguments for every asset class
(destination domain, resource ID, deposit data, fee data); only the layout
of the deposit data differs per class. Fee data carries the trailing
parameters shared by every deposit: oracle exchange rates, destination gas
price, expiry, domain IDs, resource ID and decimal factors.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, Optional, Union

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from web3 import Web3
from web3.exceptions import Web3Exception

from .contracts import BridgeContract
from .exceptions import ConfigurationError, SubmissionError, TransactionError
from .gas import PriorityTier, to_priority_tier
from .models import (
    ChainEnvironmentConfig, DepositIntent, FungiblePayload, GenericPayload, NonFungiblePayload,
)
from .resources import AssetClass
from .transactor import TransactOptions, Transactor

logger = logging.getLogger(__name__)

FEE_DATA_TYPES = [
    "uint256",  # base effective rate
    "uint256",  # token effective rate
    "uint256",  # destination gas price
    "uint256",  # expiry timestamp
    "uint8",    # from domain
    "uint8",    # destination domain
    "bytes32",  # resource ID
    "uint256",  # source decimals
    "uint256",  # destination decimals
]


def _word(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _recipient_bytes(recipient: str) -> bytes:
    if not Web3.is_address(recipient):
        raise ValueError(f"Invalid recipient address: {recipient}")
    return Web3.to_bytes(hexstr=recipient)


def erc20_deposit_data(recipient: str, amount: int) -> bytes:
    """amount(32) | len(recipient)(32) | recipient"""
    dest = _recipient_bytes(recipient)
    return _word(amount) + _word(len(dest)) + dest


def erc721_deposit_data(recipient: str, token_id: int, metadata: str) -> bytes:
    """token_id(32) | len(recipient)(32) | recipient | len(metadata)(32) | metadata"""
    dest = _recipient_bytes(recipient)
    meta = metadata.encode("utf-8")
    return _word(token_id) + _word(len(dest)) + dest + _word(len(meta)) + meta


def generic_deposit_data(data: bytes) -> bytes:
    """len(data)(32) | data"""
    return _word(len(data)) + data


_ENCODERS: Dict[AssetClass, Callable[[DepositIntent], bytes]] = {
    AssetClass.FUNGIBLE: lambda i: erc20_deposit_data(i.recipient, i.payload.amount),
    AssetClass.NON_FUNGIBLE: lambda i: erc721_deposit_data(i.recipient, i.payload.token_id, i.payload.metadata),
    AssetClass.GENERIC: lambda i: generic_deposit_data(i.payload.data),
}


def build_deposit_data(intent: DepositIntent) -> bytes:
    """Deposit data for an intent; the override blob wins when present."""
    if intent.deposit_data_override is not None:
        return intent.deposit_data_override
    return _ENCODERS[intent.asset_class](intent)


def _rate_to_wei(rate: str) -> int:
    try:
        return int(Web3.to_wei(Decimal(rate), "ether"))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid exchange rate {rate!r}: {e}")


def build_fee_data(intent: DepositIntent) -> bytes:
    """ABI-encoded fee oracle message, followed by the oracle signature if any."""
    message = abi_encode(FEE_DATA_TYPES, [
        _rate_to_wei(intent.base_rate),
        _rate_to_wei(intent.token_rate),
        intent.dest_gas_price,
        intent.expiry,
        intent.from_domain_id,
        intent.dest_domain_id,
        intent.resource_id,
        intent.from_decimals,
        intent.dest_decimals,
    ])
    return message + (intent.fee_oracle_signature or b"")


def normalize_amount(amount: int, from_decimals: int, to_decimals: int) -> int:
    """Convert an amount between token decimal scales, truncating extra precision."""
    if to_decimals >= from_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return amount // 10 ** (from_decimals - to_decimals)


def submit_deposit(
    source_config: ChainEnvironmentConfig,
    intent: DepositIntent,
    transactor: Transactor,
    priority: Optional[Union[PriorityTier, int, str]] = None,
) -> str:
    """
    Submit a deposit on the source chain's bridge.

    Args:
        source_config: Environment of the source chain
        intent: Transfer to submit
        transactor: Sender's transactor
        priority: Gas tier; falls back to the intent's tier

    Returns:
        Deposit transaction hash; inclusion is not awaited

    Raises:
        ConfigurationError: If the intent does not belong to source_config, or the
            bridge routes its resource to a handler from another environment
        SubmissionError: If the transaction is rejected
    """
    if intent.from_domain_id != source_config.domain_id:
        raise ConfigurationError(
            f"Intent originates from domain {intent.from_domain_id}, "
            f"source environment is domain {source_config.domain_id}"
        )
    deployment = source_config.asset(intent.asset_class)
    if deployment.resource_id != "0x" + intent.resource_id.hex():
        raise ConfigurationError(
            f"Resource {intent.resource_id.hex()} is not registered for "
            f"{intent.asset_class.name} in domain {source_config.domain_id}"
        )

    bridge = BridgeContract(transactor.client, source_config.bridge_address, transactor)
    try:
        registered_handler = bridge.handler_for(intent.resource_id)
    except Web3Exception as e:
        raise SubmissionError(f"Cannot read the handler of {intent.resource_id.hex()} from the bridge: {e}") from e
    # the bridge must route the resource to the handler deployed alongside the token
    source_config.assert_same_environment(registered_handler, intent.resource_id, deployment.token_address)

    try:
        deposit_data = build_deposit_data(intent)
        fee_data = build_fee_data(intent)
    except (ValueError, OverflowError, EncodingError) as e:
        raise SubmissionError(f"Malformed deposit: {e}") from e

    tier = to_priority_tier(priority if priority is not None else intent.priority)
    value = intent.fee if intent.fee is not None else source_config.fee
    opts = TransactOptions(priority=tier, value=value)

    try:
        tx_hash = bridge.deposit(intent.dest_domain_id, intent.resource_id, deposit_data, fee_data, opts)
    except TransactionError as e:
        logger.error(f"{intent.asset_class.name} deposit rejected: {e}")
        raise SubmissionError(str(e)) from e

    logger.info(
        f"{intent.asset_class.name} deposit {source_config.domain_id} -> {intent.dest_domain_id} "
        f"submitted with {tier.name} priority: {tx_hash}"
    )
    return tx_hash


# shorthand constructors for the three call shapes

def erc20_intent(**kwargs) -> DepositIntent:
    amount = kwargs.pop("amount")
    return DepositIntent(payload=FungiblePayload(amount=amount), **kwargs)


def erc721_intent(**kwargs) -> DepositIntent:
    token_id = kwargs.pop("token_id")
    metadata = kwargs.pop("metadata", "")
    return DepositIntent(payload=NonFungiblePayload(token_id=token_id, metadata=metadata), **kwargs)


def generic_intent(**kwargs) -> DepositIntent:
    data = kwargs.pop("data")
    return DepositIntent(payload=GenericPayload(data=data), **kwargs)

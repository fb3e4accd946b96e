"""
Post-relay assertions.

Everything here only reads chain state; nothing sends a transaction.
"""
import logging
from dataclasses import dataclass

from web3 import Web3
from web3.exceptions import ContractLogicError

from .contracts import AssetStoreContract, ERC20Contract, ERC721Contract
from .deposit import normalize_amount
from .exceptions import VerificationMismatchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FungibleSnapshot:
    """Sender balance on the source chain and recipient balance on the destination"""
    sender_balance: int
    recipient_balance: int


def fungible_snapshot(source_token: ERC20Contract, dest_token: ERC20Contract,
                      sender: str, recipient: str) -> FungibleSnapshot:
    return FungibleSnapshot(
        sender_balance=source_token.balance_of(sender),
        recipient_balance=dest_token.balance_of(recipient),
    )


def verify_fungible_transfer(before: FungibleSnapshot, after: FungibleSnapshot, amount: int,
                             from_decimals: int = 18, dest_decimals: int = 18) -> None:
    """
    The sender paid at least ``amount`` and the recipient got exactly the normalised amount.

    Raises:
        VerificationMismatchError: If either balance moved the wrong way
    """
    spent = before.sender_balance - after.sender_balance
    if after.sender_balance >= before.sender_balance or spent < amount:
        raise VerificationMismatchError(
            f"Sender balance dropped by {spent}, expected at least {amount}",
            expected=amount, actual=spent,
        )

    received = after.recipient_balance - before.recipient_balance
    expected = normalize_amount(amount, from_decimals, dest_decimals)
    if received != expected:
        raise VerificationMismatchError(
            f"Recipient balance grew by {received}, expected {expected}",
            expected=expected, actual=received,
        )
    logger.info(f"Fungible transfer verified: -{spent} on source, +{received} on destination")


def token_owner(token: ERC721Contract, token_id: int):
    """Owner of token_id, or None when the token does not exist on that chain."""
    try:
        return token.owner_of(token_id)
    except ContractLogicError:
        return None


def assert_token_absent(token: ERC721Contract, token_id: int) -> None:
    """
    Raises:
        VerificationMismatchError: If token_id exists on the token's chain
    """
    owner = token_owner(token, token_id)
    if owner is not None:
        raise VerificationMismatchError(
            f"Token {token_id} unexpectedly exists on {token.address}, owned by {owner}",
            expected=None, actual=owner,
        )


def assert_token_owner(token: ERC721Contract, token_id: int, owner: str) -> None:
    """
    Raises:
        VerificationMismatchError: If token_id is missing or owned by someone else
    """
    actual = token_owner(token, token_id)
    if actual is None or Web3.to_checksum_address(actual) != Web3.to_checksum_address(owner):
        raise VerificationMismatchError(
            f"Token {token_id} on {token.address} is owned by {actual}, expected {owner}",
            expected=owner, actual=actual,
        )


def verify_non_fungible_transfer(source_token: ERC721Contract, dest_token: ERC721Contract,
                                 token_id: int, recipient: str) -> None:
    """The token was burned on the source chain and minted to recipient on the destination."""
    assert_token_absent(source_token, token_id)
    assert_token_owner(dest_token, token_id, recipient)
    logger.info(f"Non-fungible transfer of token {token_id} to {recipient} verified")


def assert_asset_not_stored(asset_store: AssetStoreContract, data_hash: bytes) -> None:
    if asset_store.is_asset_stored(data_hash):
        raise VerificationMismatchError(
            f"Asset 0x{data_hash.hex()} is already stored on {asset_store.address}",
            expected=False, actual=True,
        )


def verify_generic_transfer(asset_store: AssetStoreContract, data_hash: bytes) -> None:
    """The deposited hash is stored verbatim in the destination asset store."""
    if not asset_store.is_asset_stored(data_hash):
        raise VerificationMismatchError(
            f"Asset 0x{data_hash.hex()} is not stored on {asset_store.address}",
            expected=True, actual=False,
        )
    logger.info(f"Generic payload 0x{data_hash.hex()} verified on {asset_store.address}")

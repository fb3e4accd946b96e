"""
Resource ID assignment for the bridge asset classes.

A resource ID is a 32-byte value shared verbatim by every chain of one
environment. It binds an asset class to the handler that moves it, so the
source-chain deposit and the destination-chain registration must agree on
it without talking to each other. The ID is therefore a pure function of
the asset class: a single discriminator byte left-padded with zeros.
"""
from enum import IntEnum
from typing import Union

from .exceptions import ConfigurationError

RESOURCE_ID_LENGTH = 32


class AssetClass(IntEnum):
    """Closed set of asset classes known to the harness.

    The value is the resource ID discriminator byte.
    """
    FUNGIBLE = 0
    GENERIC = 1
    NON_FUNGIBLE = 2


_ALIASES = {
    "erc20": AssetClass.FUNGIBLE,
    "fungible": AssetClass.FUNGIBLE,
    "generic": AssetClass.GENERIC,
    "erc721": AssetClass.NON_FUNGIBLE,
    "non_fungible": AssetClass.NON_FUNGIBLE,
}


def to_asset_class(asset_class: Union[AssetClass, int, str]) -> AssetClass:
    """
    Coerce a class, discriminator or alias into an AssetClass.

    Raises:
        ConfigurationError: If the value does not name a known asset class
    """
    if isinstance(asset_class, AssetClass):
        return asset_class
    if isinstance(asset_class, str):
        try:
            return _ALIASES[asset_class.lower()]
        except KeyError:
            raise ConfigurationError(f"Unknown asset class: {asset_class!r}")
    if isinstance(asset_class, bool) or not isinstance(asset_class, int):
        raise ConfigurationError(f"Unknown asset class: {asset_class!r}")
    try:
        return AssetClass(asset_class)
    except ValueError:
        raise ConfigurationError(f"Unknown asset class: {asset_class!r}")


def assign_resource_id(asset_class: Union[AssetClass, int, str]) -> bytes:
    """
    Compute the resource ID for an asset class.

    Args:
        asset_class: AssetClass member, its discriminator or an alias
            such as "erc20"

    Returns:
        32-byte resource ID

    Raises:
        ConfigurationError: If the asset class is unknown
    """
    discriminator = to_asset_class(asset_class).value
    return bytes([discriminator]).rjust(RESOURCE_ID_LENGTH, b"\x00")


def resource_id_hex(asset_class: Union[AssetClass, int, str]) -> str:
    """Resource ID as a 0x-prefixed hex string."""
    return "0x" + assign_resource_id(asset_class).hex()


def resource_id_to_bytes(resource_id: Union[str, bytes]) -> bytes:
    """
    Normalise a hex or raw resource ID to 32 bytes.

    Raises:
        ConfigurationError: If the value is not 32 bytes long
    """
    if isinstance(resource_id, str):
        value = resource_id[2:] if resource_id.startswith("0x") else resource_id
        try:
            raw = bytes.fromhex(value)
        except ValueError as e:
            raise ConfigurationError(f"Invalid resource ID {resource_id!r}: {e}")
    else:
        raw = bytes(resource_id)
    if len(raw) != RESOURCE_ID_LENGTH:
        raise ConfigurationError(
            f"Resource ID must be {RESOURCE_ID_LENGTH} bytes, got {len(raw)}"
        )
    return raw

"""
Gas price selection by priority tier.
"""
from enum import IntEnum
from typing import Dict, Mapping, Optional, Protocol, Union

from .exceptions import ConfigurationError

GWEI = 10 ** 9


class PriorityTier(IntEnum):
    """Discrete transaction priority, lowest first"""
    LOW = 0
    MEDIUM = 1
    HIGH = 2


DEFAULT_TIER_PRICES: Dict[PriorityTier, int] = {
    PriorityTier.LOW: 50 * GWEI,
    PriorityTier.MEDIUM: 100 * GWEI,
    PriorityTier.HIGH: 140 * GWEI,
}


class GasPricer(Protocol):
    """Anything that turns a priority tier into a gas price in wei"""

    def suggest_gas_price(self, tier: PriorityTier) -> int:
        ...


def to_priority_tier(value: Union[PriorityTier, int, str]) -> PriorityTier:
    """
    Coerce a tier member, its number or its name into a PriorityTier.

    Raises:
        ConfigurationError: If the value is not a known tier
    """
    if isinstance(value, PriorityTier):
        return value
    if isinstance(value, str):
        try:
            return PriorityTier[value.upper()]
        except KeyError:
            raise ConfigurationError(f"Unknown priority tier: {value!r}")
    try:
        return PriorityTier(value)
    except ValueError:
        raise ConfigurationError(f"Unknown priority tier: {value!r}")


class StaticGasPricer:
    """
    Fixed gas price per tier.

    The table is validated on construction so every tier resolves to
    exactly one price for the lifetime of the instance.
    """

    def __init__(self, tier_prices: Optional[Mapping[Union[PriorityTier, int, str], int]] = None):
        prices = DEFAULT_TIER_PRICES if tier_prices is None else tier_prices
        table: Dict[PriorityTier, int] = {}
        for key, price in prices.items():
            tier = to_priority_tier(key)
            if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
                raise ConfigurationError(f"Gas price for {tier.name} must be a positive integer, got {price!r}")
            table[tier] = price

        missing = [tier.name for tier in PriorityTier if tier not in table]
        if missing:
            raise ConfigurationError(f"Gas price table is missing tiers: {', '.join(missing)}")
        self._prices = table

    @property
    def prices(self) -> Dict[PriorityTier, int]:
        return dict(self._prices)

    def suggest_gas_price(self, tier: Union[PriorityTier, int, str]) -> int:
        return self._prices[to_priority_tier(tier)]

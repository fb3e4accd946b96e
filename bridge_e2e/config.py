"""
Settings for the two-chain e2e environment.

Every value can be overridden through a BRIDGE_E2E_* environment variable;
the defaults describe the usual local setup of two dev nodes.
"""
import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .gas import DEFAULT_TIER_PRICES, GWEI, PriorityTier, StaticGasPricer
from .provision import MPC_ADDRESS

ENV_PREFIX = "BRIDGE_E2E_"

_ENV_FIELDS = {
    "RPC_URL_1": "rpc_url_1",
    "RPC_URL_2": "rpc_url_2",
    "PRIVATE_KEY_1": "private_key_1",
    "PRIVATE_KEY_2": "private_key_2",
    "DOMAIN_ID_1": "domain_id_1",
    "DOMAIN_ID_2": "domain_id_2",
    "ARTIFACTS_DIR": "artifacts_dir",
    "MPC_ADDRESS": "mpc_address",
    "BASIC_FEE": "basic_fee",
    "DEST_GAS_PRICE": "dest_gas_price",
    "EXPIRY_WINDOW": "expiry_window",
    "TOKEN_DECIMALS": "token_decimals",
    "ETHER_DECIMALS": "ether_decimals",
    "FINALITY_TIMEOUT": "finality_timeout",
    "POLL_INTERVAL": "poll_interval",
    "PARALLEL_DEPLOY": "parallel_deploy",
}


class E2ESettings(BaseModel):
    """Configuration of one e2e run"""
    rpc_url_1: str = "http://localhost:8545"
    rpc_url_2: str = "http://localhost:8547"
    private_key_1: Optional[str] = None
    private_key_2: Optional[str] = None
    domain_id_1: int = 1
    domain_id_2: int = 2
    artifacts_dir: Optional[str] = None
    mpc_address: str = MPC_ADDRESS

    basic_fee: int = Field(default=GWEI, ge=0)
    dest_gas_price: int = Field(default=GWEI, ge=0)
    expiry_window: int = Field(default=3600, gt=0)
    token_decimals: int = 18
    ether_decimals: int = 18

    finality_timeout: float = Field(default=300, gt=0)
    poll_interval: float = Field(default=5, gt=0)
    parallel_deploy: bool = False

    gas_tier_prices: Dict[str, int] = Field(
        default_factory=lambda: {tier.name: price for tier, price in DEFAULT_TIER_PRICES.items()}
    )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "E2ESettings":
        """
        Build settings from BRIDGE_E2E_* variables.

        Raises:
            ConfigurationError: If a variable has an invalid value
        """
        env = os.environ if environ is None else environ
        values: Dict[str, object] = {}
        for suffix, field_name in _ENV_FIELDS.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw not in (None, ""):
                values[field_name] = raw

        prices = {tier.name: price for tier, price in DEFAULT_TIER_PRICES.items()}
        for tier in PriorityTier:
            raw = env.get(f"{ENV_PREFIX}GAS_PRICE_{tier.name}")
            if raw not in (None, ""):
                prices[tier.name] = raw
        values["gas_tier_prices"] = prices

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {ENV_PREFIX}* settings: {e}") from e

    def gas_pricer(self) -> StaticGasPricer:
        return StaticGasPricer(self.gas_tier_prices)

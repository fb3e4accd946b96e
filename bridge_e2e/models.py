"""
Data models for the bridge e2e harness.
"""
from typing import Dict, Any, Optional, List, Literal, Union, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import ConfigurationError
from .gas import PriorityTier
from .resources import AssetClass, resource_id_hex, resource_id_to_bytes

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
UINT256_LIMIT = 2 ** 256


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    contract_address: Optional[str] = Field(None, alias="contractAddress")
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class AssetDeployment(BaseModel):
    """Token (or asset store), handler and resource ID of one asset class"""
    asset_class: AssetClass
    token_address: str
    handler_address: str
    resource_id: str

    model_config = ConfigDict(frozen=True)


class ChainEnvironmentConfig(BaseModel):
    """
    Addresses and resource IDs of one provisioned chain.

    Produced once by the provisioner and read-only afterwards.
    """
    domain_id: int
    bridge_address: str
    fee_handler_address: str
    fee: int = 0
    is_basic_fee_handler: bool = True

    erc20_address: str
    erc20_handler_address: str
    erc721_address: str
    erc721_handler_address: str
    generic_handler_address: str
    asset_store_address: str

    resource_id_erc20: str = Field(default_factory=lambda: resource_id_hex(AssetClass.FUNGIBLE))
    resource_id_erc721: str = Field(default_factory=lambda: resource_id_hex(AssetClass.NON_FUNGIBLE))
    resource_id_generic: str = Field(default_factory=lambda: resource_id_hex(AssetClass.GENERIC))

    model_config = ConfigDict(frozen=True)

    def asset(self, asset_class: AssetClass) -> AssetDeployment:
        """Return the deployment triple registered for an asset class."""
        if asset_class == AssetClass.FUNGIBLE:
            token, handler, rid = self.erc20_address, self.erc20_handler_address, self.resource_id_erc20
        elif asset_class == AssetClass.NON_FUNGIBLE:
            token, handler, rid = self.erc721_address, self.erc721_handler_address, self.resource_id_erc721
        elif asset_class == AssetClass.GENERIC:
            token, handler, rid = self.asset_store_address, self.generic_handler_address, self.resource_id_generic
        else:
            raise ConfigurationError(f"Unknown asset class: {asset_class!r}")
        return AssetDeployment(
            asset_class=asset_class,
            token_address=token,
            handler_address=handler,
            resource_id=rid,
        )

    def addresses(self) -> Tuple[str, ...]:
        """All contract addresses deployed for this environment."""
        return (
            self.bridge_address,
            self.fee_handler_address,
            self.erc20_address,
            self.erc20_handler_address,
            self.erc721_address,
            self.erc721_handler_address,
            self.generic_handler_address,
            self.asset_store_address,
        )

    def assert_same_environment(self, handler_address: str, resource_id: Union[str, bytes], token_address: str) -> None:
        """
        Check that a (handler, resource ID, token) triple belongs to this config.

        Raises:
            ConfigurationError: If any member was deployed elsewhere
        """
        rid = "0x" + resource_id_to_bytes(resource_id).hex()
        for asset_class in AssetClass:
            deployment = self.asset(asset_class)
            if deployment.resource_id != rid:
                continue
            if (deployment.handler_address.lower() == handler_address.lower()
                    and deployment.token_address.lower() == token_address.lower()):
                return
            break
        raise ConfigurationError(
            f"Triple ({handler_address}, {rid}, {token_address}) is not registered "
            f"in the environment of domain {self.domain_id}"
        )


class FungiblePayload(BaseModel):
    kind: Literal["fungible"] = "fungible"
    amount: int = Field(..., gt=0, lt=UINT256_LIMIT)


class NonFungiblePayload(BaseModel):
    kind: Literal["non_fungible"] = "non_fungible"
    token_id: int = Field(..., ge=0, lt=UINT256_LIMIT)
    metadata: str = ""


class GenericPayload(BaseModel):
    kind: Literal["generic"] = "generic"
    data: bytes

    @field_validator("data")
    @classmethod
    def _not_empty(cls, value: bytes) -> bytes:
        if not value:
            raise ValueError("generic payload must not be empty")
        return value


DepositPayload = Union[FungiblePayload, NonFungiblePayload, GenericPayload]

_PAYLOAD_CLASSES = {
    "fungible": AssetClass.FUNGIBLE,
    "non_fungible": AssetClass.NON_FUNGIBLE,
    "generic": AssetClass.GENERIC,
}


class DepositIntent(BaseModel):
    """One cross-chain transfer, built right before submission."""
    resource_id: bytes
    recipient: str
    payload: DepositPayload = Field(..., discriminator="kind")
    dest_gas_price: int = Field(..., ge=0)
    expiry: int
    from_domain_id: int
    dest_domain_id: int
    from_decimals: int = 18
    dest_decimals: int = 18
    fee: Optional[int] = None
    priority: PriorityTier = PriorityTier.MEDIUM
    base_rate: str = "1000.0"
    token_rate: str = "1000.0"
    deposit_data_override: Optional[bytes] = None
    fee_oracle_signature: Optional[bytes] = None

    @field_validator("resource_id", mode="before")
    @classmethod
    def _normalise_resource_id(cls, value):
        try:
            return resource_id_to_bytes(value)
        except ConfigurationError as e:
            raise ValueError(str(e))

    @model_validator(mode="after")
    def _check_resource_matches_payload(self) -> "DepositIntent":
        expected = _PAYLOAD_CLASSES[self.payload.kind]
        if self.resource_id[-1] != expected.value:
            raise ValueError(
                f"resource ID {self.resource_id.hex()} does not belong to the "
                f"{self.payload.kind} asset class"
            )
        if self.from_domain_id == self.dest_domain_id:
            raise ValueError("source and destination domain must differ")
        return self

    @property
    def asset_class(self) -> AssetClass:
        return _PAYLOAD_CLASSES[self.payload.kind]


class Keyshare(BaseModel):
    """Key received from keygen or resharing plus the current signing committee"""
    key: Dict[str, Any] = Field(..., alias="Key")
    threshold: int = Field(..., ge=0, alias="Threshold")
    peers: List[str] = Field(default_factory=list, alias="Peers")

    model_config = ConfigDict(populate_by_name=True)

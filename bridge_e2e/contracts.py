"""
Contract bindings for the bridge, fee handler, token, handler and asset store contracts.

Call ABIs are embedded so an existing deployment can be driven without any
build output. Deploying needs the compiled bytecode, which is read from a
directory of Hardhat/Truffle style artifacts (``<Name>.json`` files with
``abi`` and ``bytecode`` keys).
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from .client import ChainClient
from .exceptions import ConfigurationError, DeploymentError
from .models import TxReceipt, ZERO_ADDRESS
from .transactor import TransactOptions, Transactor

logger = logging.getLogger(__name__)

MINTER_ROLE = Web3.keccak(text="MINTER_ROLE")

# selector of CentrifugeAsset.store(bytes32)
ASSET_STORE_FUNCTION_SIG = bytes.fromhex("654cf88c")

ADMIN_GAS_LIMIT = 2000000


def _abi_fn(name: str, inputs: Sequence[Tuple[str, str]] = (), outputs: Sequence[str] = (),
            mutability: str = "nonpayable") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t, "internalType": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t, "internalType": t} for t in outputs],
        "stateMutability": mutability,
    }


def _abi_event(name: str, inputs: Sequence[Tuple[str, str, bool]]) -> Dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [{"name": n, "type": t, "indexed": i, "internalType": t} for n, t, i in inputs],
    }


BRIDGE_ABI = [
    _abi_fn("endKeygen", [("MPCAddress", "address")]),
    _abi_fn("adminChangeFeeHandler", [("newFeeHandler", "address")]),
    _abi_fn("adminSetResource", [
        ("handlerAddress", "address"), ("resourceID", "bytes32"), ("tokenAddress", "address"),
    ]),
    _abi_fn("adminSetGenericResource", [
        ("handlerAddress", "address"), ("resourceID", "bytes32"), ("contractAddress", "address"),
        ("depositFunctionSig", "bytes4"), ("depositorOffset", "uint256"), ("executeFunctionSig", "bytes4"),
    ]),
    _abi_fn("adminSetBurnable", [("handlerAddress", "address"), ("tokenAddress", "address")]),
    _abi_fn("deposit", [
        ("destinationDomainID", "uint8"), ("resourceID", "bytes32"),
        ("depositData", "bytes"), ("feeData", "bytes"),
    ], mutability="payable"),
    _abi_fn("_domainID", outputs=["uint8"], mutability="view"),
    _abi_fn("_resourceIDToHandlerAddress", [("resourceID", "bytes32")], ["address"], "view"),
    _abi_fn("_feeHandler", outputs=["address"], mutability="view"),
    _abi_event("Deposit", [
        ("destinationDomainID", "uint8", False), ("resourceID", "bytes32", False),
        ("depositNonce", "uint64", False), ("user", "address", True),
        ("data", "bytes", False), ("handlerResponse", "bytes", False),
    ]),
    _abi_event("ProposalExecution", [
        ("originDomainID", "uint8", False), ("depositNonce", "uint64", False), ("dataHash", "bytes32", False),
    ]),
]

FEE_HANDLER_ABI = [
    _abi_fn("changeFee", [("newFee", "uint256")]),
    _abi_fn("_fee", outputs=["uint256"], mutability="view"),
]

ERC20_ABI = [
    _abi_fn("mint", [("to", "address"), ("amount", "uint256")]),
    _abi_fn("approve", [("spender", "address"), ("amount", "uint256")], ["bool"]),
    _abi_fn("grantRole", [("role", "bytes32"), ("account", "address")]),
    _abi_fn("hasRole", [("role", "bytes32"), ("account", "address")], ["bool"], "view"),
    _abi_fn("balanceOf", [("account", "address")], ["uint256"], "view"),
    _abi_fn("allowance", [("owner", "address"), ("spender", "address")], ["uint256"], "view"),
    _abi_fn("decimals", outputs=["uint8"], mutability="view"),
]

ERC721_ABI = [
    _abi_fn("mint", [("to", "address"), ("tokenId", "uint256"), ("_data", "string")]),
    _abi_fn("approve", [("to", "address"), ("tokenId", "uint256")]),
    _abi_fn("grantRole", [("role", "bytes32"), ("account", "address")]),
    _abi_fn("hasRole", [("role", "bytes32"), ("account", "address")], ["bool"], "view"),
    _abi_fn("ownerOf", [("tokenId", "uint256")], ["address"], "view"),
    _abi_fn("tokenURI", [("tokenId", "uint256")], ["string"], "view"),
]

ASSET_STORE_ABI = [
    _abi_fn("store", [("asset", "bytes32")]),
    _abi_fn("_assetsStored", [("asset", "bytes32")], ["bool"], "view"),
]

HANDLER_ABI = [
    _abi_fn("_bridgeAddress", outputs=["address"], mutability="view"),
]


class ContractArtifact(BaseModel):
    """Compiled contract: ABI plus creation bytecode"""
    contract_name: str = Field(..., alias="contractName")
    abi: List[Dict[str, Any]]
    bytecode: str

    model_config = ConfigDict(populate_by_name=True)


class ArtifactStore:
    """
    Reads compiled contract artifacts from a directory.

    Args:
        artifacts_dir: Directory searched recursively for ``<Name>.json``;
            defaults to the BRIDGE_E2E_ARTIFACTS_DIR environment variable
    """

    def __init__(self, artifacts_dir: Optional[Union[str, Path]] = None):
        path = artifacts_dir or os.environ.get("BRIDGE_E2E_ARTIFACTS_DIR")
        if not path:
            raise ConfigurationError(
                "No artifacts directory configured. Pass artifacts_dir or set BRIDGE_E2E_ARTIFACTS_DIR"
            )
        self.artifacts_dir = Path(path)
        self._cache: Dict[str, ContractArtifact] = {}

    def load(self, name: str) -> ContractArtifact:
        """
        Load the artifact of one contract.

        Raises:
            ConfigurationError: If the artifact is missing or malformed
        """
        if name in self._cache:
            return self._cache[name]

        matches = sorted(self.artifacts_dir.rglob(f"{name}.json"))
        if not matches:
            raise ConfigurationError(f"Artifact {name}.json not found under {self.artifacts_dir}")

        try:
            with open(matches[0], "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read artifact {matches[0]}: {e}")

        data.setdefault("contractName", name)
        bytecode = data.get("bytecode")
        # Foundry nests the bytecode under "object"
        if isinstance(bytecode, dict):
            data["bytecode"] = bytecode.get("object", "")
        # interfaces and abstract contracts compile to "0x"
        if data.get("bytecode") in (None, "", "0x"):
            raise ConfigurationError(f"Artifact {name} has no bytecode")

        artifact = ContractArtifact.model_validate(data)
        self._cache[name] = artifact
        return artifact


def require_address(address: Optional[str], what: str) -> str:
    """
    Reject a missing or zero address before it reaches a constructor.

    Raises:
        DeploymentError: If the address is empty or the zero address
    """
    if not address or not Web3.is_address(address):
        raise DeploymentError(f"{what} address is not known yet, refusing to deploy", step=what)
    if int(address, 16) == 0:
        raise DeploymentError(f"{what} address is the zero address, refusing to deploy", step=what)
    return Web3.to_checksum_address(address)


class BoundContract:
    """
    Base class for contract wrappers.

    Subclasses set ARTIFACT_NAME and ABI. Views go through the shared client;
    transactions go through the transactor of the caller.
    """
    ARTIFACT_NAME: str = ""
    ABI: List[Dict[str, Any]] = []

    def __init__(self, client: ChainClient, address: Optional[str] = None,
                 transactor: Optional[Transactor] = None):
        self.client = client
        self.transactor = transactor
        self.address = Web3.to_checksum_address(address) if address else None
        self._contract = client.contract(self.address, self.ABI) if self.address else None

    def __repr__(self):
        return f"{type(self).__name__}({self.address})"

    @property
    def contract(self):
        if self._contract is None:
            raise ConfigurationError(f"{type(self).__name__} has no address; deploy it first")
        return self._contract

    def _require_transactor(self) -> Transactor:
        if self.transactor is None:
            raise ConfigurationError(f"{type(self).__name__} was created without a transactor")
        return self.transactor

    def _deploy(self, artifacts: ArtifactStore, *args) -> str:
        transactor = self._require_transactor()
        artifact = artifacts.load(self.ARTIFACT_NAME)
        factory = self.client.contract(abi=artifact.abi, bytecode=artifact.bytecode)
        address = transactor.deploy(factory.constructor(*args))
        self.address = Web3.to_checksum_address(address)
        self._contract = self.client.contract(self.address, self.ABI)
        logger.debug(f"{self.ARTIFACT_NAME} deployed to: {self.address}")
        return self.address

    def _transact(self, method: str, *args, opts: Optional[TransactOptions] = None) -> TxReceipt:
        call = getattr(self.contract.functions, method)(*args)
        return self._require_transactor().transact(call, opts)

    def _send(self, method: str, *args, opts: Optional[TransactOptions] = None) -> str:
        call = getattr(self.contract.functions, method)(*args)
        return self._require_transactor().send(call, opts)

    def _call(self, method: str, *args):
        return getattr(self.contract.functions, method)(*args).call()


class BridgeContract(BoundContract):
    ARTIFACT_NAME = "Bridge"
    ABI = BRIDGE_ABI

    def deploy(self, artifacts: ArtifactStore, domain_id: int) -> str:
        return self._deploy(artifacts, domain_id)

    def end_keygen(self, mpc_address: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("endKeygen", Web3.to_checksum_address(mpc_address), opts=opts)

    def set_fee_handler(self, fee_handler: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("adminChangeFeeHandler", Web3.to_checksum_address(fee_handler),
                              opts=opts or TransactOptions(gas_limit=ADMIN_GAS_LIMIT))

    def register_resource(self, handler: str, resource_id: bytes, token: str,
                          opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact(
            "adminSetResource",
            Web3.to_checksum_address(handler), resource_id, Web3.to_checksum_address(token),
            opts=opts or TransactOptions(gas_limit=ADMIN_GAS_LIMIT),
        )

    def register_generic_resource(self, handler: str, resource_id: bytes, target: str,
                                  deposit_sig: bytes = ASSET_STORE_FUNCTION_SIG, depositor_offset: int = 0,
                                  execute_sig: bytes = ASSET_STORE_FUNCTION_SIG,
                                  opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact(
            "adminSetGenericResource",
            Web3.to_checksum_address(handler), resource_id, Web3.to_checksum_address(target),
            deposit_sig, depositor_offset, execute_sig,
            opts=opts or TransactOptions(gas_limit=ADMIN_GAS_LIMIT),
        )

    def mark_burnable(self, handler: str, token: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("adminSetBurnable", Web3.to_checksum_address(handler),
                              Web3.to_checksum_address(token), opts=opts)

    def deposit(self, dest_domain_id: int, resource_id: bytes, deposit_data: bytes, fee_data: bytes,
                opts: Optional[TransactOptions] = None) -> str:
        """Broadcast a deposit without waiting for inclusion; returns the tx hash."""
        return self._send("deposit", dest_domain_id, resource_id, deposit_data, fee_data, opts=opts)

    def handler_for(self, resource_id: bytes) -> str:
        return self._call("_resourceIDToHandlerAddress", resource_id)


class BasicFeeHandlerContract(BoundContract):
    ARTIFACT_NAME = "BasicFeeHandler"
    ABI = FEE_HANDLER_ABI

    def deploy(self, artifacts: ArtifactStore, bridge_address: Optional[str]) -> str:
        return self._deploy(artifacts, require_address(bridge_address, "bridge"))

    def change_fee(self, fee: int, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("changeFee", fee, opts=opts)

    def fee(self) -> int:
        return self._call("_fee")


class ERC20Contract(BoundContract):
    ARTIFACT_NAME = "ERC20PresetMinterPauser"
    ABI = ERC20_ABI

    def deploy(self, artifacts: ArtifactStore, name: str = "Test", symbol: str = "TST") -> str:
        return self._deploy(artifacts, name, symbol)

    def mint(self, to: str, amount: int, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("mint", Web3.to_checksum_address(to), amount, opts=opts)

    def approve(self, spender: str, amount: int, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("approve", Web3.to_checksum_address(spender), amount, opts=opts)

    def add_minter(self, minter: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("grantRole", MINTER_ROLE, Web3.to_checksum_address(minter), opts=opts)

    def balance_of(self, account: str) -> int:
        return self._call("balanceOf", Web3.to_checksum_address(account))

    def decimals(self) -> int:
        return self._call("decimals")


class ERC721Contract(BoundContract):
    ARTIFACT_NAME = "ERC721MinterBurnerPauser"
    ABI = ERC721_ABI

    def deploy(self, artifacts: ArtifactStore, name: str = "TestERC721", symbol: str = "TST721",
               base_uri: str = "") -> str:
        return self._deploy(artifacts, name, symbol, base_uri)

    def mint(self, token_id: int, metadata: str, to: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("mint", Web3.to_checksum_address(to), token_id, metadata, opts=opts)

    def approve(self, token_id: int, spender: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("approve", Web3.to_checksum_address(spender), token_id, opts=opts)

    def add_minter(self, minter: str, opts: Optional[TransactOptions] = None) -> TxReceipt:
        return self._transact("grantRole", MINTER_ROLE, Web3.to_checksum_address(minter), opts=opts)

    def owner_of(self, token_id: int) -> str:
        """Owner of a token; raises ContractLogicError if the token does not exist."""
        return self._call("ownerOf", token_id)


class HandlerContract(BoundContract):
    """ERC20, ERC721 and generic handlers share the bridge-only constructor."""
    ABI = HANDLER_ABI

    def __init__(self, client: ChainClient, artifact_name: str, address: Optional[str] = None,
                 transactor: Optional[Transactor] = None):
        super().__init__(client, address, transactor)
        self.ARTIFACT_NAME = artifact_name

    def deploy(self, artifacts: ArtifactStore, bridge_address: Optional[str]) -> str:
        return self._deploy(artifacts, require_address(bridge_address, "bridge"))


def erc20_handler(client: ChainClient, address: Optional[str] = None,
                  transactor: Optional[Transactor] = None) -> HandlerContract:
    return HandlerContract(client, "ERC20Handler", address, transactor)


def erc721_handler(client: ChainClient, address: Optional[str] = None,
                   transactor: Optional[Transactor] = None) -> HandlerContract:
    return HandlerContract(client, "ERC721Handler", address, transactor)


def generic_handler(client: ChainClient, address: Optional[str] = None,
                    transactor: Optional[Transactor] = None) -> HandlerContract:
    return HandlerContract(client, "GenericHandler", address, transactor)


class AssetStoreContract(BoundContract):
    ARTIFACT_NAME = "CentrifugeAsset"
    ABI = ASSET_STORE_ABI

    def deploy(self, artifacts: ArtifactStore) -> str:
        return self._deploy(artifacts)

    def is_asset_stored(self, asset: bytes) -> bool:
        return bool(self._call("_assetsStored", asset))


__all__ = [
    "ArtifactStore", "ContractArtifact", "BoundContract", "BridgeContract", "BasicFeeHandlerContract",
    "ERC20Contract", "ERC721Contract", "HandlerContract", "AssetStoreContract",
    "erc20_handler", "erc721_handler", "generic_handler", "require_address",
    "MINTER_ROLE", "ASSET_STORE_FUNCTION_SIG", "ADMIN_GAS_LIMIT", "ZERO_ADDRESS",
]

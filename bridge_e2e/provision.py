"""
Provisioning of one chain of the bridge test environment.

Contracts are deployed in dependency order: the bridge first, then the fee
handler, token/handler pairs and the generic asset store, all bound to the
bridge address. Resources are registered last. A failed step aborts the
whole run; already deployed contracts are left behind because the
environment is disposable and is rebuilt from scratch instead of repaired.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Optional, Tuple

from web3.exceptions import Web3Exception

from .client import ChainClient
from .contracts import (
    ArtifactStore, AssetStoreContract, BasicFeeHandlerContract, BridgeContract,
    ERC20Contract, ERC721Contract, erc20_handler, erc721_handler, generic_handler, require_address,
)
from .exceptions import DeploymentError, TransactionError
from .models import ChainEnvironmentConfig
from .resources import AssetClass, assign_resource_id, resource_id_hex
from .transactor import Transactor

logger = logging.getLogger(__name__)

MPC_ADDRESS = "0x1c5541A79AcC662ab2D2647F3B141a3B7Cdb2Ae4"

# 10 tokens with 18 decimals
INITIAL_MINT_AMOUNT = 10 * 10 ** 18


@contextmanager
def _step(name: str):
    """Turn any transaction failure inside a provisioning step into a DeploymentError."""
    logger.debug(f"Provisioning step: {name}")
    try:
        yield
    except DeploymentError:
        raise
    except (TransactionError, Web3Exception, ValueError) as e:
        logger.error(f"Provisioning step '{name}' failed: {e}")
        raise DeploymentError(f"{name} failed: {e}", step=name) from e


def deploy_bridge(client: ChainClient, transactor: Transactor, artifacts: ArtifactStore,
                  domain_id: int, mpc_address: str = MPC_ADDRESS) -> BridgeContract:
    """Deploy the bridge and finish its keygen bootstrap."""
    bridge = BridgeContract(client, transactor=transactor)
    with _step("deploy bridge"):
        bridge.deploy(artifacts, domain_id)
    with _step("end keygen"):
        bridge.end_keygen(mpc_address)
    return bridge


def deploy_fee_handler(client: ChainClient, transactor: Transactor, artifacts: ArtifactStore,
                       bridge: BridgeContract, fee: int = 0) -> str:
    """Deploy the basic fee handler, set its fee and make it the bridge's active handler."""
    fee_handler = BasicFeeHandlerContract(client, transactor=transactor)
    with _step("deploy fee handler"):
        fee_handler.deploy(artifacts, bridge.address)
    if fee:
        with _step("change fee"):
            fee_handler.change_fee(fee)
    with _step("set fee handler"):
        bridge.set_fee_handler(fee_handler.address)
    return fee_handler.address


def deploy_erc20(client: ChainClient, transactor: Transactor, artifacts: ArtifactStore,
                 bridge_address: Optional[str]) -> Tuple[ERC20Contract, str]:
    """Deploy the ERC20 token and its handler. Returns (token, handler address)."""
    bridge_address = require_address(bridge_address, "bridge")
    token = ERC20Contract(client, transactor=transactor)
    handler = erc20_handler(client, transactor=transactor)
    with _step("deploy erc20"):
        token.deploy(artifacts, "Test", "TST")
    with _step("deploy erc20 handler"):
        handler.deploy(artifacts, bridge_address)
    logger.debug(f"Erc20 deployed to: {token.address}; Erc20 Handler deployed to: {handler.address}")
    return token, handler.address


def deploy_erc721(client: ChainClient, transactor: Transactor, artifacts: ArtifactStore,
                  bridge_address: Optional[str]) -> Tuple[ERC721Contract, str]:
    """Deploy the ERC721 token and its handler. Returns (token, handler address)."""
    bridge_address = require_address(bridge_address, "bridge")
    token = ERC721Contract(client, transactor=transactor)
    handler = erc721_handler(client, transactor=transactor)
    with _step("deploy erc721"):
        token.deploy(artifacts, "TestERC721", "TST721", "")
    with _step("deploy erc721 handler"):
        handler.deploy(artifacts, bridge_address)
    logger.debug(f"Erc721 deployed to: {token.address}; Erc721 Handler deployed to: {handler.address}")
    return token, handler.address


def deploy_generic(client: ChainClient, transactor: Transactor, artifacts: ArtifactStore,
                   bridge_address: Optional[str]) -> Tuple[str, str]:
    """Deploy the asset store and the generic handler. Returns (handler, asset store)."""
    bridge_address = require_address(bridge_address, "bridge")
    handler = generic_handler(client, transactor=transactor)
    asset_store = AssetStoreContract(client, transactor=transactor)
    with _step("deploy asset store"):
        asset_store.deploy(artifacts)
    with _step("deploy generic handler"):
        handler.deploy(artifacts, bridge_address)
    logger.debug(
        f"Centrifuge asset store deployed to: {asset_store.address}; "
        f"Generic Handler deployed to: {handler.address}"
    )
    return handler.address, asset_store.address


def prepare_erc20(bridge: BridgeContract, token: ERC20Contract, handler: str, mint_to: str,
                  resource_id: bytes, amount: int = INITIAL_MINT_AMOUNT) -> None:
    """Register the fungible resource and fund mint_to."""
    with _step("register erc20 resource"):
        bridge.register_resource(handler, resource_id, token.address)
    with _step("mint erc20"):
        token.mint(mint_to, amount)
    with _step("approve erc20 handler"):
        token.approve(handler, amount)
    with _step("add erc20 minter"):
        token.add_minter(handler)
    with _step("set erc20 burnable"):
        bridge.mark_burnable(handler, token.address)


def prepare_erc721(bridge: BridgeContract, token: ERC721Contract, handler: str, resource_id: bytes) -> None:
    """Register the non-fungible resource; tokens are minted per deposit, not here."""
    with _step("register erc721 resource"):
        bridge.register_resource(handler, resource_id, token.address)
    with _step("add erc721 minter"):
        token.add_minter(handler)
    with _step("set erc721 burnable"):
        bridge.mark_burnable(handler, token.address)


def prepare_generic(bridge: BridgeContract, handler: str, asset_store: str, resource_id: bytes) -> None:
    """Register the generic resource against the asset store's store(bytes32)."""
    with _step("register generic resource"):
        bridge.register_generic_resource(handler, resource_id, asset_store)


def provision(
    client: ChainClient,
    transactor: Transactor,
    domain_id: int,
    mint_to: str,
    artifacts: Optional[ArtifactStore] = None,
    mpc_address: str = MPC_ADDRESS,
    fee: int = 0,
    parallel: bool = False,
) -> ChainEnvironmentConfig:
    """
    Deploy and wire every contract of one chain.

    Args:
        client: Chain client of the target chain
        transactor: Deployer's transactor; owns the nonce sequence
        domain_id: Bridge domain ID of the chain
        mint_to: Receiver of the initial ERC20 balance
        artifacts: Compiled contract artifacts (BRIDGE_E2E_ARTIFACTS_DIR when None)
        mpc_address: Address handed to endKeygen
        fee: Basic fee in wei; 0 leaves the handler's default
        parallel: Deploy the per-class token/handler pairs concurrently

    Returns:
        Immutable configuration of the deployed environment

    Raises:
        DeploymentError: If any deployment or admin transaction fails
        ConfigurationError: If an artifact or asset class is unknown
    """
    artifacts = artifacts or ArtifactStore()
    logger.info(f"Provisioning bridge environment for domain {domain_id}")

    # IDs are computed up front so an unknown class aborts before any deployment
    rid_erc20 = assign_resource_id(AssetClass.FUNGIBLE)
    rid_generic = assign_resource_id(AssetClass.GENERIC)
    rid_erc721 = assign_resource_id(AssetClass.NON_FUNGIBLE)

    bridge = deploy_bridge(client, transactor, artifacts, domain_id, mpc_address)
    fee_handler_address = deploy_fee_handler(client, transactor, artifacts, bridge, fee)

    if parallel:
        with ThreadPoolExecutor(max_workers=2) as executor:
            erc721_future = executor.submit(deploy_erc721, client, transactor, artifacts, bridge.address)
            erc20_future = executor.submit(deploy_erc20, client, transactor, artifacts, bridge.address)
            erc721_token, erc721_handler_address = erc721_future.result()
            erc20_token, erc20_handler_address = erc20_future.result()
    else:
        erc721_token, erc721_handler_address = deploy_erc721(client, transactor, artifacts, bridge.address)
        erc20_token, erc20_handler_address = deploy_erc20(client, transactor, artifacts, bridge.address)

    generic_handler_address, asset_store_address = deploy_generic(client, transactor, artifacts, bridge.address)

    config = ChainEnvironmentConfig(
        domain_id=domain_id,
        bridge_address=bridge.address,
        fee_handler_address=fee_handler_address,
        fee=fee,
        is_basic_fee_handler=True,
        erc20_address=erc20_token.address,
        erc20_handler_address=erc20_handler_address,
        erc721_address=erc721_token.address,
        erc721_handler_address=erc721_handler_address,
        generic_handler_address=generic_handler_address,
        asset_store_address=asset_store_address,
        resource_id_erc20=resource_id_hex(AssetClass.FUNGIBLE),
        resource_id_erc721=resource_id_hex(AssetClass.NON_FUNGIBLE),
        resource_id_generic=resource_id_hex(AssetClass.GENERIC),
    )

    prepare_erc20(bridge, erc20_token, erc20_handler_address, mint_to, rid_erc20)
    prepare_erc721(bridge, erc721_token, erc721_handler_address, rid_erc721)
    prepare_generic(bridge, generic_handler_address, asset_store_address, rid_generic)

    logger.info(f"All deployments and preparations are done for domain {domain_id}")
    return config

"""
Two-chain bridge end-to-end test environment.
"""
from .client import ChainClient
from .config import E2ESettings
from .deposit import (
    build_deposit_data, build_fee_data, erc20_intent, erc721_intent, generic_intent,
    normalize_amount, submit_deposit,
)
from .exceptions import (
    BridgeE2EError, ConfigurationError, DeploymentError, FinalityTimeoutError, KeyshareError,
    SubmissionError, TransactionError, VerificationMismatchError,
)
from .finality import proposal_executed, wait_for_proposal_executed
from .fixtures import KeyRing
from .gas import PriorityTier, StaticGasPricer
from .keyshare import KeyshareStore
from .models import ChainEnvironmentConfig, DepositIntent, Keyshare, TxReceipt
from .provision import provision
from .resources import AssetClass, assign_resource_id
from .scenarios import BridgeScenarioSuite
from .transactor import TransactOptions, Transactor
from .version import __version__

__all__ = [
    "AssetClass", "assign_resource_id",
    "BridgeE2EError", "ConfigurationError", "DeploymentError", "FinalityTimeoutError",
    "KeyshareError", "SubmissionError", "TransactionError", "VerificationMismatchError",
    "BridgeScenarioSuite", "ChainClient", "ChainEnvironmentConfig", "DepositIntent", "E2ESettings",
    "KeyRing", "Keyshare", "KeyshareStore", "PriorityTier", "StaticGasPricer", "TransactOptions",
    "Transactor", "TxReceipt",
    "build_deposit_data", "build_fee_data", "erc20_intent", "erc721_intent", "generic_intent",
    "normalize_amount", "proposal_executed", "provision", "submit_deposit", "wait_for_proposal_executed",
    "__version__",
]

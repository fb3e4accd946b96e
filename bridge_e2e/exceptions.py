"""
Exceptions for the bridge e2e harness.
"""
from typing import Optional


class BridgeE2EError(Exception):
    """Base exception for all bridge e2e errors."""
    pass


class TransactionError(BridgeE2EError):
    """Raised when a transaction cannot be signed, sent or is reverted."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ConfigurationError(BridgeE2EError):
    """Raised when the environment or an asset class is misconfigured."""
    pass


class DeploymentError(BridgeE2EError):
    """Raised when a deploy or admin-configuration transaction fails."""

    def __init__(self, message: str, step: Optional[str] = None):
        self.step = step
        super().__init__(message)


class SubmissionError(BridgeE2EError):
    """Raised when a deposit transaction is rejected by the source chain."""
    pass


class FinalityTimeoutError(BridgeE2EError):
    """Raised when a destination proposal is not executed before the deadline."""

    def __init__(self, message: str, bridge_address: Optional[str] = None, timeout: Optional[float] = None):
        self.bridge_address = bridge_address
        self.timeout = timeout
        super().__init__(message)


class VerificationMismatchError(BridgeE2EError):
    """Raised when a post-relay invariant does not hold."""

    def __init__(self, message: str, expected=None, actual=None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class KeyshareError(BridgeE2EError):
    """Raised when the keyshare file cannot be read or written."""
    pass

"""
Shieldwatch Error Handling

All error codes and exception classes.

Trial-decryption misses are not errors: they are reported through
DecryptionResult and never raised.
"""

from enum import IntEnum
from typing import Optional, Any


class ErrorCode(IntEnum):
    """Error codes."""

    # 1xxx - General errors
    UNKNOWN_ERROR = 1000
    INVALID_PARAMETER = 1001
    INVALID_CONFIG = 1002

    # 2xxx - Key errors
    INVALID_VIEWING_KEY = 2001

    # 3xxx - Network errors
    CONNECTION_FAILURE = 3001
    STREAM_FAILURE = 3002

    # 4xxx - Transaction errors
    MALFORMED_TRANSACTION = 4001

    # 5xxx - Storage errors
    PERSISTENCE_FAILURE = 5001

    # 6xxx - Watch loop errors
    WATCH_CIRCUIT_OPEN = 6001


class ShieldWatchError(Exception):
    """Base exception for all shieldwatch errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Any] = None
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        result = {
            "code": self.code.value,
            "name": self.code.name,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


# ==============================================================================
# General Errors (1xxx)
# ==============================================================================

class InvalidParameterError(ShieldWatchError):
    def __init__(self, param: str, message: str = ""):
        msg = f"Invalid parameter: {param}"
        if message:
            msg += f" - {message}"
        super().__init__(ErrorCode.INVALID_PARAMETER, msg, {"parameter": param})


class InvalidConfigError(ShieldWatchError):
    def __init__(self, errors: list):
        super().__init__(
            ErrorCode.INVALID_CONFIG,
            "Invalid configuration: " + "; ".join(errors),
            {"errors": list(errors)}
        )


# ==============================================================================
# Key Errors (2xxx)
# ==============================================================================

class InvalidViewingKeyError(ShieldWatchError):
    def __init__(self, reason: str):
        super().__init__(
            ErrorCode.INVALID_VIEWING_KEY,
            f"Invalid incoming viewing key: {reason}"
        )


# ==============================================================================
# Network Errors (3xxx)
# ==============================================================================

class ConnectionFailureError(ShieldWatchError):
    def __init__(self, server: str, reason: str = ""):
        msg = f"Cannot reach server {server}"
        if reason:
            msg += f": {reason}"
        super().__init__(ErrorCode.CONNECTION_FAILURE, msg, {"server": server})


class StreamFailureError(ShieldWatchError):
    def __init__(self, start_height: int, end_height: int, reason: str = ""):
        msg = f"Block stream {start_height}-{end_height} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(
            ErrorCode.STREAM_FAILURE,
            msg,
            {"start_height": start_height, "end_height": end_height}
        )
        self.start_height = start_height
        self.end_height = end_height


# ==============================================================================
# Transaction Errors (4xxx)
# ==============================================================================

class MalformedTransactionError(ShieldWatchError):
    def __init__(self, reason: str, offset: Optional[int] = None):
        details = {"offset": offset} if offset is not None else None
        super().__init__(
            ErrorCode.MALFORMED_TRANSACTION,
            f"Malformed transaction: {reason}",
            details
        )


# ==============================================================================
# Storage Errors (5xxx)
# ==============================================================================

class PersistenceError(ShieldWatchError):
    def __init__(self, path: str, reason: str = ""):
        msg = f"Cannot persist state at {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(ErrorCode.PERSISTENCE_FAILURE, msg, {"path": path})


# ==============================================================================
# Watch Loop Errors (6xxx)
# ==============================================================================

class WatchCircuitOpenError(ShieldWatchError):
    def __init__(self, failures: int):
        super().__init__(
            ErrorCode.WATCH_CIRCUIT_OPEN,
            f"Watch loop halted after {failures} consecutive failures",
            {"failures": failures}
        )
        self.failures = failures

"""Error taxonomy shared by the copy engine and the cloud provider clients."""
from enum import Enum


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    DATABASE_ERROR = "DATABASE_ERROR"
    # Cloud provider boundary
    AUTH_FAILED = "AUTH_FAILED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    UNKNOWN = "UNKNOWN"


class CopyError(Exception):
    """Fatal failure of a copy operation. Raised after the transaction rolled back."""

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class QuotaExceededError(CopyError):
    """Raised when an operation would push a user past their storage limit."""

    def __init__(self, message: str):
        super().__init__(ErrorCode.QUOTA_EXCEEDED, message)

"""
Engine error taxonomy.
Services raise VersionError subclasses; VersionManager turns them into ServiceResult values.
"""
import enum


class ErrorCode(str, enum.Enum):
    ACCESS_DENIED = "ACCESS_DENIED"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_STATE = "INVALID_STATE"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    CONFLICT_RETRYABLE = "CONFLICT_RETRYABLE"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


class VersionError(Exception):
    """Base for expected engine failures. `message` is safe to show to callers."""

    code: ErrorCode = ErrorCode.STORE_UNAVAILABLE
    default_message = "Version operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AccessDenied(VersionError):
    code = ErrorCode.ACCESS_DENIED
    default_message = "Access denied"


class NotFound(VersionError):
    code = ErrorCode.NOT_FOUND
    default_message = "Version not found"


class ValidationFailed(VersionError):
    code = ErrorCode.VALIDATION_FAILED
    default_message = "Validation failed"


class InvalidState(VersionError):
    code = ErrorCode.INVALID_STATE
    default_message = "Operation not allowed in the current version state"


class LimitExceeded(VersionError):
    code = ErrorCode.LIMIT_EXCEEDED
    default_message = "Maximum number of versions reached for this content"


class ConflictRetryable(VersionError):
    code = ErrorCode.CONFLICT_RETRYABLE
    default_message = "Concurrent modification detected, please retry"


class StoreUnavailable(VersionError):
    code = ErrorCode.STORE_UNAVAILABLE
    default_message = "Version store unavailable"


class OperationTimeout(VersionError):
    code = ErrorCode.TIMEOUT
    default_message = "Operation timed out"

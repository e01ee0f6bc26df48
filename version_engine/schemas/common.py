"""Uniform result shape returned by every engine operation."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from version_engine.errors import ErrorCode, VersionError


class ServiceResult(BaseModel):
    """
    {success, data?, error?, error_code?}. Expected business failures are values, not exceptions.
    skipped=True marks a benign no-op (auto-save with unchanged content).
    """

    success: bool
    data: Any = None
    error: Optional[str] = Field(None, description="Human-readable error message")
    error_code: Optional[ErrorCode] = Field(None, description="Stable error code")
    skipped: bool = False
    message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(
        cls,
        data: Any = None,
        message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ServiceResult":
        return cls(success=True, data=data, message=message, metadata=metadata)

    @classmethod
    def skip(cls, message: str, metadata: Optional[Dict[str, Any]] = None) -> "ServiceResult":
        return cls(success=True, data=None, skipped=True, message=message, metadata=metadata)

    @classmethod
    def fail(cls, error: VersionError) -> "ServiceResult":
        return cls(success=False, error=error.message, error_code=error.code)

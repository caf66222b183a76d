"""
Error taxonomy shared by the storage layer, the core and the API.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorType(str, Enum):
    VALIDATION = "VALIDATION_ERROR"
    STORAGE = "STORAGE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    SYSTEM = "SYSTEM_ERROR"


class LimiterError(Exception):
    error_type: ErrorType = ErrorType.SYSTEM
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "message": str(self),
            "type": self.error_type.value,
            "isRetryable": self.retryable,
        }


class ValidationError(LimiterError):
    """Malformed input; raised before anything is written."""

    error_type = ErrorType.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.field:
            d["field"] = self.field
        return d


class NotFoundError(LimiterError):
    error_type = ErrorType.NOT_FOUND


class StoreError(LimiterError):
    """The persistent store could not complete an operation."""

    error_type = ErrorType.STORAGE
    retryable = True

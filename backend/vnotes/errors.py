"""Error taxonomy for the notes core.

Every error carries a human-readable message, a machine-readable code and
a small ``details`` dict, so the widget layer can both notify the user and
log something structured.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorCode(Enum):
    # Input errors (1xxx)
    VALIDATION_FAILED = 1001
    RATE_LIMITED = 1002
    CAPACITY_EXCEEDED = 1003
    NOTE_NOT_FOUND = 1004

    # Storage errors (4xxx)
    STORAGE_UNAVAILABLE = 4001
    PERSISTENCE_VERIFY_FAILED = 4002

    # Backup errors (5xxx)
    IMPORT_FORMAT_INVALID = 5001


class NotesError(Exception):
    """Base exception for all notes core errors."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(NotesError):
    """Title or content failed the input rules."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code=ErrorCode.VALIDATION_FAILED,
            details={"field": field} if field else None,
        )
        self.field = field


class RateLimited(NotesError):
    def __init__(self, retry_after_ms: int):
        super().__init__(
            "Please wait before performing another action",
            code=ErrorCode.RATE_LIMITED,
            details={"retry_after_ms": retry_after_ms},
        )
        self.retry_after_ms = retry_after_ms


class CapacityExceeded(NotesError):
    def __init__(self, limit: int):
        super().__init__(
            f"Maximum {limit} notes allowed",
            code=ErrorCode.CAPACITY_EXCEEDED,
            details={"limit": limit},
        )
        self.limit = limit


class NotFound(NotesError):
    def __init__(self, note_id: str):
        super().__init__(
            "Note not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id},
        )
        self.note_id = note_id


class StorageError(NotesError):
    """A storage tier could not take or return a snapshot."""

    def __init__(
        self,
        message: str,
        code: ErrorCode,
        key: Optional[str] = None,
        tier: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: dict[str, Any] = {}
        if key:
            details["key"] = key
        if tier:
            details["tier"] = tier
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=code, details=details)
        self.key = key
        self.tier = tier
        self.original_error = original_error


class StorageUnavailable(StorageError):
    def __init__(
        self,
        message: str = "Storage is not available",
        key: Optional[str] = None,
        tier: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            code=ErrorCode.STORAGE_UNAVAILABLE,
            key=key,
            tier=tier,
            original_error=original_error,
        )


class PersistenceVerifyFailed(StorageError):
    def __init__(self, key: str, tier: Optional[str] = None):
        super().__init__(
            "Data verification failed after save",
            code=ErrorCode.PERSISTENCE_VERIFY_FAILED,
            key=key,
            tier=tier,
        )


class ImportFormatError(NotesError):
    def __init__(self, message: str = "Invalid backup format"):
        super().__init__(message, code=ErrorCode.IMPORT_FORMAT_INVALID)

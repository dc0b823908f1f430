"""Custom exceptions for the Chronicle index.

Provides a structured exception hierarchy with error codes and
machine-readable error information, so calling layers can tell an
unreadable file from a store failure or a note that is simply absent.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_ALREADY_EXISTS = 1002

    # Vault errors (2xxx)
    VAULT_NOT_FOUND = 2001

    # I/O errors (3xxx)
    FILE_READ_FAILED = 3001
    FILE_DECODE_FAILED = 3002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004

    # Search errors (5xxx)
    SEARCH_FAILED = 5001


class ChronicleError(Exception):
    """Base exception for all Chronicle index errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
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


class NoteNotFoundError(ChronicleError):
    """Raised when a path or id is not present in the index."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note '{path}' is not indexed",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"path": path},
        )
        self.path = path


class NoteExistsError(ChronicleError):
    """Raised when a rename would collide with an indexed note."""

    def __init__(self, path: str):
        super().__init__(
            f"Note '{path}' is already indexed",
            code=ErrorCode.NOTE_ALREADY_EXISTS,
            details={"path": path},
        )
        self.path = path


class VaultNotFoundError(ChronicleError):
    """Raised when the vault root does not exist."""

    def __init__(self, path: str):
        super().__init__(
            f"Vault path does not exist: {path}",
            code=ErrorCode.VAULT_NOT_FOUND,
            details={"path": path},
        )
        self.path = path


class VaultIOError(ChronicleError):
    """Raised when a note file cannot be read."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.FILE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if path:
            details["path"] = path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.path = path
        self.original_error = original_error


class StorageError(ChronicleError):
    """Raised when the store rejects a read or a write."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if path:
            details["path"] = path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error

"""Custom exceptions for the Coppermind sync engine.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Schema errors (1xxx)
    SCHEMA_UNKNOWN_TABLE = 1001
    SCHEMA_INVALID_TABLE = 1002
    SCHEMA_BOOTSTRAP_FAILED = 1003

    # Storage errors (4xxx)
    STORAGE_QUERY_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_UNSUPPORTED_DIALECT = 4008

    # Sync errors (5xxx)
    SYNC_CONNECTION_FAILED = 5002
    SYNC_TABLE_FAILED = 5003
    SYNC_TOMBSTONE_FAILED = 5004
    SYNC_SWEEP_FAILED = 5005

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001


class CoppermindError(Exception):
    """Base exception for all sync engine errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SYNC_TABLE_FAILED,
        details: Optional[Dict[str, Any]] = None
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
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class SchemaError(CoppermindError):
    """Raised for unknown tables, invalid table descriptors and DDL failures."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        code: ErrorCode = ErrorCode.SCHEMA_INVALID_TABLE,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if table:
            details["table"] = table
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.table = table
        self.original_error = original_error


class StorageError(CoppermindError):
    """Raised when a statement fails against one of the stores."""

    def __init__(
        self,
        message: str,
        store: Optional[str] = None,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_QUERY_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if store:
            details["store"] = store
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.store = store
        self.operation = operation
        self.original_error = original_error


class SyncError(CoppermindError):
    """Raised when reconciling a table fails."""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.SYNC_TABLE_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.table = table
        self.operation = operation
        self.original_error = original_error


class SyncConnectionError(SyncError):
    """Raised when the remote store cannot be reached or bootstrapped."""

    def __init__(
        self,
        message: str,
        url_hint: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="connect",
            code=ErrorCode.SYNC_CONNECTION_FAILED,
            original_error=original_error
        )
        if url_hint:
            # Masked URL only, never the raw connection string
            self.details["url"] = url_hint
        self.url_hint = url_hint


class ConfigurationError(CoppermindError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key

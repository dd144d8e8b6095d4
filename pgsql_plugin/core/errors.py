"""
Error types and classification for the PostgreSQL plugin.

Every error raised to the host derives from PluginError and can be turned into
a standardized ErrorInfo payload, so workflow case blocks can branch on
`kind`/`retryable`/`pg_code` without string matching:

    case:
      - when: "{{ event.payload.error.kind == 'db_constraint' }}"
        then:
          jump:
            action: handle_duplicate
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Standardized error categories for case block matching."""

    CONFIG = "config"               # Missing/invalid plugin configuration
    SCHEMA = "schema"               # Input validation, type mismatch
    STATE = "state"                 # Plugin used before initialization
    AUTH = "auth"                   # Disallowed invocation path

    DB_CONNECTION = "db_connection" # Database connection failure
    DB_CONSTRAINT = "db_constraint" # Unique constraint, foreign key
    DB_DEADLOCK = "db_deadlock"     # Transaction deadlock / serialization
    DB_TIMEOUT = "db_timeout"       # Query timeout / cancellation
    DB_SYNTAX = "db_syntax"         # Syntax error, undefined table/column

    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """Standardized error object for event payloads."""

    kind: ErrorKind = Field(
        default=ErrorKind.UNKNOWN,
        description="Error category for case matching"
    )
    retryable: bool = Field(
        default=False,
        description="Whether this error is worth retrying by the caller"
    )
    code: str = Field(
        default="UNKNOWN",
        description="Plugin-specific error code (PG_23505, CONFIG, ...)"
    )
    message: str = Field(
        default="Unknown error",
        description="Human-readable error message"
    )
    source: str = Field(
        default="postgres",
        description="Tool kind that produced this error"
    )
    pg_code: Optional[str] = Field(
        None, description="PostgreSQL SQLSTATE (e.g. 40001, 40P01, 23505)"
    )
    exception_type: Optional[str] = Field(
        None, description="Python exception class name"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional extra context"
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for event payload access."""
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
            "source": self.source,
        }
        if self.pg_code is not None:
            d["pg_code"] = self.pg_code
        if self.exception_type is not None:
            d["exception_type"] = self.exception_type
        if self.details:
            d["details"] = self.details
        return d


class PluginError(Exception):
    """Base class of every error the plugin raises to its host."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    code: str = "PLUGIN_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(
            kind=self.kind,
            retryable=False,
            code=self.code,
            message=self.message,
            exception_type=type(self).__name__,
        )


class ConfigurationError(PluginError):
    """Missing or invalid connection configuration."""

    kind = ErrorKind.CONFIG
    code = "CONFIG"


class ValidationError(PluginError):
    """Malformed invocation input (missing SQL, bad payload shape)."""

    kind = ErrorKind.SCHEMA
    code = "VALIDATION"


class UnsupportedOperationError(ValidationError):
    code = "UNSUPPORTED_OPERATION"

    def __init__(self, operation: str):
        super().__init__(f"PostgreSQL plugin: Operation '{operation}' is not supported.")
        self.operation = operation


class TypeBindingError(PluginError):
    """A parameter value has no PostgreSQL mapping."""

    kind = ErrorKind.SCHEMA
    code = "TYPE_BINDING"

    def __init__(self, message: str, parameter: Optional[str] = None, value_type: Optional[type] = None):
        super().__init__(message)
        self.parameter = parameter
        self.value_type = value_type


class NotInitializedError(PluginError):
    kind = ErrorKind.STATE
    code = "NOT_INITIALIZED"


class AccessDeniedError(PluginError):
    kind = ErrorKind.AUTH
    code = "ACCESS_DENIED"


class DatabaseError(PluginError):
    """Failure surfaced by the driver: connectivity, syntax, constraint."""

    code = "PG_UNKNOWN"

    def __init__(self, message: str, pg_code: Optional[str] = None):
        super().__init__(message)
        self.pg_code = pg_code
        self.info = classify_postgres_error(message, pg_code)
        self.kind = self.info.kind
        self.code = self.info.code

    def to_error_info(self) -> ErrorInfo:
        return self.info.model_copy(update={"exception_type": type(self).__name__})

    @classmethod
    def from_exception(cls, error: BaseException) -> "DatabaseError":
        pg_code = getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)
        message = str(error).strip() or type(error).__name__
        return cls(message, pg_code=pg_code)


def classify_postgres_error(message: str, pg_code: Optional[str] = None) -> ErrorInfo:
    """Classify a PostgreSQL failure by SQLSTATE, falling back to the message text."""
    error_str = (message or "").lower()
    code = f"PG_{pg_code}" if pg_code else "PG_UNKNOWN"

    def _info(kind: ErrorKind, retryable: bool) -> ErrorInfo:
        return ErrorInfo(
            kind=kind,
            retryable=retryable,
            code=code,
            message=message,
            source="postgres",
            pg_code=pg_code,
        )

    if pg_code in ("40001", "40P01") or "deadlock" in error_str:
        return _info(ErrorKind.DB_DEADLOCK, True)

    if (pg_code and pg_code.startswith("23")) or "duplicate key" in error_str:
        return _info(ErrorKind.DB_CONSTRAINT, False)

    if (pg_code and pg_code.startswith("08")) or "connection" in error_str:
        return _info(ErrorKind.DB_CONNECTION, True)

    if pg_code == "57014" or "timeout" in error_str:
        return _info(ErrorKind.DB_TIMEOUT, True)

    if pg_code and pg_code.startswith("42"):
        return _info(ErrorKind.DB_SYNTAX, False)

    return _info(ErrorKind.UNKNOWN, False)

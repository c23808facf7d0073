from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Standardized error codes for a single invocation."""
    MISSING_TARGET = "MISSING_TARGET"
    MISSING_STATEMENT = "MISSING_STATEMENT"
    UNKNOWN_FLAG = "UNKNOWN_FLAG"
    TOO_MANY_ARGUMENTS = "TOO_MANY_ARGUMENTS"
    CONFLICTING_MODES = "CONFLICTING_MODES"
    INVALID_LIMIT = "INVALID_LIMIT"
    MODE_NOT_SUPPORTED = "MODE_NOT_SUPPORTED"
    MISSING_ENDPOINT = "MISSING_ENDPOINT"
    UNKNOWN_BACKEND = "UNKNOWN_BACKEND"
    INVALID_JSON = "INVALID_JSON"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
    CONNECTION_FAILED = "CONNECTION_FAILED"
    DB_EXECUTION_ERROR = "DB_EXECUTION_ERROR"
    WRITE_CONFLICT = "WRITE_CONFLICT"
    HTTP_ERROR = "HTTP_ERROR"
    GRAPHQL_ERROR = "GRAPHQL_ERROR"


class PgDocError(Exception):
    """Base class for every error that terminates an invocation.

    Attributes:
        code (ErrorCode): The standardized error code.
        message (str): A human-readable error message.
        detail (Optional[str]): The underlying backend text, when available.
        exit_code (int): Process exit status for this error.
    """

    exit_code = 1

    def __init__(self, message: str, code: ErrorCode, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        if self.detail and self.detail not in self.message:
            return f"{self.message}: {self.detail}"
        return self.message


class UsageError(PgDocError):
    """Malformed or missing arguments, raised before any connection attempt."""


class ConfigurationError(PgDocError):
    """A required environment value is missing or invalid."""


class PayloadError(PgDocError):
    """A JSON-bearing argument failed to parse."""


class BackendError(PgDocError):
    """The remote call failed. The backend's own message is kept in ``detail``."""

"""
Error taxonomy for the report pipeline.

- AuthError:     setup-time, fatal. No report can proceed without a session.
- FetchError:    collection-level, fatal for the report run.
- SubFetchError: record-level, recovered by sentinel substitution.
- ExportError:   fatal, raised after all data work is done.
"""
from typing import Any, Optional

from .constants import GRAPH_AUTH_ERROR_CODES, GRAPH_AUTH_STATUS_CODES


class ReportError(Exception):
    """Base class for errors that name the failed operation and its cause."""

    def __init__(self, operation: str, cause: Any):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class AuthError(ReportError):
    """Raised when a session cannot be established against a service."""

    def __init__(self, service: str, cause: Any):
        self.service = service
        super().__init__(f"Connect to {service}", cause)


class FetchError(ReportError):
    """Raised when a whole resource collection cannot be retrieved."""

    def __init__(self, resource_type: str, cause: Any):
        self.resource_type = resource_type
        super().__init__(f"Fetch {resource_type}", cause)


class SubFetchError(ReportError):
    """Raised when a related record for one source record cannot be retrieved."""

    def __init__(self, resource_type: str, record_id: Optional[str], cause: Any):
        self.resource_type = resource_type
        self.record_id = record_id
        super().__init__(f"Fetch {resource_type} for {record_id}", cause)


class ExportError(ReportError):
    """Raised when the export file cannot be written."""

    def __init__(self, path: str, cause: Any):
        self.path = path
        super().__init__(f"Export to {path}", cause)


def is_auth_error(exc: Exception) -> bool:
    """
    Check if an exception represents an authentication/authorization error.

    Detects:
    - Graph ODataError / APIError with auth-related error codes or 401/403 status
    - azure-identity ClientAuthenticationError

    Args:
        exc: The exception to check

    Returns:
        True if the exception is an authentication/authorization error
    """
    exc_type_name = type(exc).__name__

    if exc_type_name == 'ClientAuthenticationError':
        return True

    status_code = getattr(exc, 'response_status_code', None)
    if status_code is None:
        status_code = getattr(exc, 'status_code', None)
    if status_code in GRAPH_AUTH_STATUS_CODES:
        return True

    # Graph - ODataError carries a main error with a code
    if exc_type_name == 'ODataError':
        error = getattr(exc, 'error', None)
        if error:
            error_code = getattr(error, 'code', '')
            return error_code in GRAPH_AUTH_ERROR_CODES

    return False


def describe_cause(exc: Exception) -> str:
    """Return a readable cause string, unwrapping Graph ODataError messages."""
    error = getattr(exc, 'error', None)
    message = getattr(error, 'message', None) if error is not None else None
    if isinstance(message, str) and message:
        code = getattr(error, 'code', None)
        return f"{code}: {message}" if isinstance(code, str) and code else message
    return str(exc) or type(exc).__name__

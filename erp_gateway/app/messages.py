"""
User-facing text for failed backend calls.
"""

from typing import Any, Optional

from erp_core.errors import OperationCancelledError
from erp_core.results import error_field
from erp_core.retry import is_schema_cache_error


PERMISSION_DENIED_CODES = ("42501",)
UNIQUE_VIOLATION_CODES = ("23505",)

SYNC_STILL_FAILING = (
    "The system is synchronizing its database to make sure the data is current. "
    "We retried automatically; if it still fails, please try again in a few moments."
)


def describe_failure(error: Any, action: str = "load data") -> Optional[str]:
    """Message to show for ``error``, or None when nothing should be shown.

    Cancelled calls were abandoned on purpose and stay silent.
    """
    if not error or isinstance(error, OperationCancelledError):
        return None
    if is_schema_cache_error(error):
        return SYNC_STILL_FAILING

    code = error_field(error, "code")
    if code in PERMISSION_DENIED_CODES:
        return f"You do not have permission to {action}."
    if code in UNIQUE_VIOLATION_CODES:
        return f"Failed to {action}: a record with the same value already exists."

    message = error_field(error, "message") or "internal error"
    return f"Failed to {action}: {message}"

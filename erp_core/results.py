"""
Result envelope shared by the backend client and the retry wrapper.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import BackendError, ErpException, OperationCancelledError


@dataclass(frozen=True)
class QueryResult:
    """Outcome of a remote call in ``{data, error}`` form.

    Exactly one of ``data`` or ``error`` is meaningful: a result with a
    truthy ``error`` is a failure regardless of ``data``.
    """

    data: Any = None
    error: Any = None
    count: Optional[int] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return not self.error

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, OperationCancelledError)

    @classmethod
    def coerce(cls, raw: Any) -> "QueryResult":
        """Normalize whatever an operation returned into a ``QueryResult``."""
        if isinstance(raw, QueryResult):
            return raw
        if isinstance(raw, Mapping):
            return cls(data=raw.get("data"), error=raw.get("error"), count=raw.get("count"))
        if hasattr(raw, "data") or hasattr(raw, "error"):
            return cls(
                data=getattr(raw, "data", None),
                error=getattr(raw, "error", None),
                count=getattr(raw, "count", None),
            )
        return cls(data=raw)

    def unwrap(self) -> Any:
        """Return ``data`` or raise the error."""
        if not self.error:
            return self.data
        if isinstance(self.error, Exception):
            raise self.error
        raise BackendError.from_payload(self.error, status_code=self.status_code)


def error_field(error: Any, name: str) -> Optional[str]:
    """Read ``code``/``message``/``details`` from an exception or a raw payload."""
    if error is None:
        return None
    if isinstance(error, Mapping):
        value = error.get(name)
    elif name == "details" and isinstance(error, BackendError):
        value = error.raw_details
    elif name == "message" and isinstance(error, Exception) and not isinstance(error, ErpException):
        value = getattr(error, "message", None) or str(error)
    else:
        value = getattr(error, name, None)
    return value if isinstance(value, str) else None

"""
Shared utilities for the ERP data access layer.

This package aggregates the building blocks used by every client of the
hosted backend:

- retry: schema-cache retry wrapper with caching and cancellation
- cache: TTL query cache owned by the composition root
- cancellation: cooperative cancellation tokens
- notifications: deduplicated user notifications
- results: the ``{data, error}`` result envelope
- config: settings via pydantic-settings
- logging: structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: canonical error types and responses

Nothing here imports from erp_gateway.
"""

from .cache import QueryCache
from .cancellation import CancellationToken
from .errors import BackendError, ErpException, OperationCancelledError
from .notifications import NotificationCenter
from .results import QueryResult
from .retry import ResilientCaller, RetryPolicy, is_schema_cache_error

__all__ = [
    "BackendError",
    "CancellationToken",
    "ErpException",
    "NotificationCenter",
    "OperationCancelledError",
    "QueryCache",
    "QueryResult",
    "ResilientCaller",
    "RetryPolicy",
    "is_schema_cache_error",
]

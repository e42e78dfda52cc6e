"""
Retry wrapper for backend calls that can fail while the schema cache catches up.

PostgREST keeps a cached view of the database schema. Right after a table or
column is created it answers ``PGRST205`` ("Could not find the table ... in the
schema cache") until that cache reloads, so those errors are retried with
exponential backoff. Every other error is returned to the caller untouched.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from .cache import QueryCache
from .cancellation import CancellationToken
from .errors import OperationCancelledError
from .logging import get_logger
from .metrics import MetricsCollector
from .notifications import DEFAULT_NOTIFICATION_DURATION
from .results import QueryResult, error_field


SCHEMA_CACHE_ERROR_CODES = ("PGRST205",)
SCHEMA_CACHE_MARKER = "schema cache"

Operation = Callable[[], Union[Awaitable[Any], Any]]
Notifier = Callable[..., Any]


class RetryPolicy:
    """Configuration for schema-cache retry behavior."""

    def __init__(self,
                 max_retries: int = 3,
                 initial_delay: float = 1.0,
                 max_delay: float = 10.0,
                 exponential_base: float = 2.0,
                 notice_id: str = "schema-retry-toast",
                 notice_message: str = "Database synchronization in progress. Please wait a moment...",
                 notice_duration: float = DEFAULT_NOTIFICATION_DURATION):
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.notice_id = notice_id
        self.notice_message = notice_message
        self.notice_duration = notice_duration

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
            notice_id=settings.sync_notice_id,
            notice_message=settings.sync_notice_message,
            notice_duration=settings.sync_notice_duration,
        )


def calculate_backoff(attempt: int, initial_delay: float, policy: RetryPolicy) -> float:
    """Delay before retry number ``attempt + 1`` (``attempt`` counts from 0)."""
    delay = initial_delay * (policy.exponential_base ** attempt)
    return max(0.0, min(delay, policy.max_delay))


def is_schema_cache_error(error: Any, codes: Iterable[str] = SCHEMA_CACHE_ERROR_CODES) -> bool:
    """True when ``error`` is the backend's transient schema-cache miss."""
    if not error:
        return False
    if error_field(error, "code") in tuple(codes):
        return True
    for name in ("message", "details"):
        text = error_field(error, name)
        if isinstance(text, str) and SCHEMA_CACHE_MARKER in text.lower():
            return True
    return False


def schema_cache_predicate(codes: Iterable[str]) -> Callable[[Any], bool]:
    """Build a retry predicate that recognizes a custom set of error codes."""
    codes = tuple(codes)

    def predicate(error: Any) -> bool:
        return is_schema_cache_error(error, codes)

    return predicate


class ResilientCaller:
    """Runs backend operations with caching, schema-cache retries and cancellation.

    One instance is built by the composition root and shared by every
    collaborator, so they all see the same query cache.
    """

    def __init__(self,
                 cache: Optional[QueryCache] = None,
                 notify: Optional[Notifier] = None,
                 *,
                 policy: Optional[RetryPolicy] = None,
                 is_retryable: Callable[[Any], bool] = is_schema_cache_error,
                 metrics: Optional[MetricsCollector] = None):
        self.cache = cache if cache is not None else QueryCache()
        self.notify = notify
        self.policy = policy or RetryPolicy()
        self.is_retryable = is_retryable
        self.metrics = metrics
        self.logger = get_logger("erp.retry")

    async def with_retry(self,
                         operation: Operation,
                         max_retries: Optional[int] = None,
                         initial_delay: Optional[float] = None,
                         cache_key: Optional[str] = None,
                         signal: Optional[CancellationToken] = None) -> QueryResult:
        """Run ``operation`` and return its result, never raising for its failures.

        ``operation`` may be called up to ``max_retries + 1`` times. A result
        that arrives after ``signal`` was cancelled is discarded and replaced
        by an ``OperationCancelledError``.
        """
        if max_retries is None:
            max_retries = self.policy.max_retries
        if initial_delay is None:
            initial_delay = self.policy.initial_delay
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")

        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                self._count("query_cache_lookups_total", result="hit")
                return cached
            self._count("query_cache_lookups_total", result="miss")

        last_error: Any = None

        for attempt in range(max_retries + 1):
            if self._aborted(signal):
                return self._cancelled(cache_key, attempt)

            try:
                raw = operation()
                if inspect.isawaitable(raw):
                    raw = await raw
                result = QueryResult.coerce(raw)
            except Exception as e:
                result = QueryResult(error=e)

            if self._aborted(signal):
                return self._cancelled(cache_key, attempt)

            if result.ok:
                self._count("remote_call_attempts_total", outcome="success")
                if cache_key is not None:
                    self.cache.set(cache_key, result)
                if attempt > 0:
                    self.logger.info("Retry succeeded", attempt=attempt + 1, cache_key=cache_key)
                return result

            last_error = result.error

            if not self.is_retryable(last_error):
                self._count("remote_call_attempts_total", outcome="error")
                break

            self._count("remote_call_attempts_total", outcome="schema_cache_miss")
            if attempt >= max_retries:
                self.logger.error(
                    "Schema cache retries exhausted",
                    attempts=attempt + 1,
                    cache_key=cache_key,
                    error=error_field(last_error, "message"),
                )
                break

            if self._aborted(signal):
                return self._cancelled(cache_key, attempt)

            delay = calculate_backoff(attempt, initial_delay, self.policy)
            self.logger.warning(
                "Schema cache error detected, retrying",
                retry=attempt + 1,
                max_retries=max_retries,
                delay=delay,
                cache_key=cache_key,
            )
            self._count("remote_call_retries_total")
            if attempt == 0:
                self._notify_sync()

            if signal is not None:
                await signal.sleep(delay)
            else:
                await asyncio.sleep(delay)

        return QueryResult(data=None, error=last_error)

    def clear_query_cache(self) -> None:
        """Forget every cached result. Call after any mutation."""
        self.cache.clear()

    def _notify_sync(self):
        if self.notify is None:
            return
        try:
            self.notify(
                self.policy.notice_message,
                id=self.policy.notice_id,
                duration=self.policy.notice_duration,
            )
        except Exception as e:
            self.logger.error("Failed to show sync notification", error=str(e))

    def _aborted(self, signal: Optional[CancellationToken]) -> bool:
        return signal is not None and signal.aborted

    def _cancelled(self, cache_key: Optional[str], attempt: int) -> QueryResult:
        self._count("remote_call_cancellations_total")
        self.logger.info("Wrapped call cancelled", attempt=attempt + 1, cache_key=cache_key)
        return QueryResult(data=None, error=OperationCancelledError())

    def _count(self, metric_name: str, **labels):
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)

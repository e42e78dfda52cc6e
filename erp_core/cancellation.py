"""
Cooperative cancellation token shared by call sites tied to one view or request.
"""

import asyncio
from typing import Any, Callable, List, Optional

from .logging import get_logger


class CancellationToken:
    """Externally owned abort signal.

    The owner calls ``cancel()`` when the work is no longer wanted (view closed,
    request abandoned). Holders poll ``aborted`` or await ``wait()``/``sleep()``.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self.reason: Optional[Any] = None
        self._event = asyncio.Event()
        self._callbacks: List[Callable[["CancellationToken"], Any]] = []
        self.logger = get_logger(f"erp.cancellation.{name}")

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[Any] = None) -> None:
        """Signal cancellation. Repeated calls are no-ops."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        self.logger.debug("Cancellation requested", reason=reason)

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception as e:
                self.logger.error("Cancellation callback failed", error=str(e))

    def on_cancel(self, callback: Callable[["CancellationToken"], Any]) -> None:
        """Run ``callback`` once when cancelled, immediately if already cancelled."""
        if self._event.is_set():
            callback(self)
            return
        self._callbacks.append(callback)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for ``delay`` seconds or until cancelled.

        Returns True when woken early by cancellation.
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return False
        return True

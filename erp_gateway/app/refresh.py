"""
Refetch scheduling: rerun a fetch on demand or periodically, abandoning the previous run.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

from erp_core.cancellation import CancellationToken
from erp_core.logging import get_logger


Refetch = Callable[[CancellationToken], Awaitable[Any]]


class RefetchScheduler:
    """Keeps one fetch alive at a time.

    Every ``trigger()`` cancels the token handed to the previous run before
    starting a new one, so stale retries stop instead of piling up.
    """

    def __init__(self, refetch: Refetch, interval: float = 0.0, name: str = "refetch"):
        self.refetch = refetch
        self.interval = interval
        self.name = name
        self.logger = get_logger(f"gateway.refresh.{name}")
        self._token: Optional[CancellationToken] = None
        self._inflight: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def trigger(self, reason: str = "manual") -> asyncio.Task:
        """Abandon the in-flight run and start a fresh one."""
        if self._token is not None:
            self._token.cancel(reason="superseded")

        token = CancellationToken(self.name)
        self._token = token
        self.logger.debug("Refetching", reason=reason)
        task = asyncio.create_task(self._run(token))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run(self, token: CancellationToken) -> Any:
        try:
            return await self.refetch(token)
        except Exception as e:
            self.logger.error("Refetch failed", error=str(e))
            return None

    async def start(self) -> None:
        """Begin periodic refetching when an interval is configured."""
        if self.interval <= 0 or self.running:
            return
        self._loop_task = asyncio.create_task(self._periodic())
        self.logger.info("Periodic refetch started", interval=self.interval)

    async def _periodic(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.trigger("interval")

    async def stop(self) -> None:
        """Stop the periodic loop and wait for every run still in flight."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._token is not None:
            self._token.cancel(reason="stopped")
        if self._inflight:
            await asyncio.gather(*self._inflight)

"""
Shared fixtures for gateway tests.
"""

from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Tuple
from unittest.mock import MagicMock

import pytest

from erp_core.cache import QueryCache
from erp_core.results import QueryResult
from erp_core.retry import ResilientCaller


class FakeBackend:
    """In-memory stand-in for BackendClient.

    Queue results per (method, table) with ``queue``; unqueued calls succeed
    with empty data. Every call is recorded in ``calls``.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self._results: Dict[Tuple[str, str], Deque[QueryResult]] = defaultdict(deque)
        self.healthy = True

    def queue(self, method: str, table: str, *results: QueryResult):
        self._results[(method, table)].extend(results)

    def count(self, method: str, table: str) -> int:
        return len([c for c in self.calls if c[0] == method and c[1] == table])

    async def _respond(self, method: str, table: str, **kwargs) -> QueryResult:
        self.calls.append((method, table, kwargs))
        pending = self._results[(method, table)]
        if pending:
            result = pending.popleft()
            if isinstance(result, Exception):
                raise result
            return result
        return QueryResult(data=[])

    async def select(self, table, columns="*", **kwargs):
        return await self._respond("select", table, columns=columns, **kwargs)

    async def insert(self, table, rows, **kwargs):
        return await self._respond("insert", table, rows=rows, **kwargs)

    async def upsert(self, table, rows, **kwargs):
        return await self._respond("upsert", table, rows=rows, **kwargs)

    async def update(self, table, values, **kwargs):
        return await self._respond("update", table, values=values, **kwargs)

    async def delete(self, table, **kwargs):
        return await self._respond("delete", table, **kwargs)

    async def health_check(self):
        return self.healthy


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def notify():
    return MagicMock()


@pytest.fixture
def caller(notify):
    return ResilientCaller(QueryCache(ttl=30.0), notify)

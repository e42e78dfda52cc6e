"""
Unit tests for refetch scheduling and failure messages.
"""

import asyncio

import pytest

from erp_core.errors import BackendError, OperationCancelledError
from erp_gateway.app.messages import SYNC_STILL_FAILING, describe_failure
from erp_gateway.app.refresh import RefetchScheduler


class TestRefetchScheduler:
    """Test cases for RefetchScheduler."""

    @pytest.mark.asyncio
    async def test_trigger_runs_refetch(self):
        seen = []

        async def refetch(token):
            seen.append(token)
            return "rows"

        scheduler = RefetchScheduler(refetch)
        result = await scheduler.trigger("focus")

        assert result == "rows"
        assert len(seen) == 1
        assert seen[0].aborted is False

    @pytest.mark.asyncio
    async def test_new_trigger_cancels_previous_run(self):
        tokens = []

        async def refetch(token):
            tokens.append(token)
            await token.sleep(5.0)
            return token.aborted

        scheduler = RefetchScheduler(refetch)
        first = scheduler.trigger("focus")
        await asyncio.sleep(0)
        second = scheduler.trigger("visible")

        assert await asyncio.wait_for(first, timeout=1.0) is True
        assert tokens[0].reason == "superseded"
        assert tokens[1].aborted is False

        await scheduler.stop()
        assert await second is True

    @pytest.mark.asyncio
    async def test_stop_waits_for_superseded_runs(self):
        finished = []

        async def refetch(token):
            await asyncio.sleep(0.05)
            finished.append(token.reason)

        scheduler = RefetchScheduler(refetch)
        first = scheduler.trigger("focus")
        second = scheduler.trigger("visible")

        await scheduler.stop()

        assert first.done() and second.done()
        assert sorted(finished) == ["stopped", "superseded"]

    @pytest.mark.asyncio
    async def test_refetch_errors_are_contained(self):
        async def refetch(token):
            raise RuntimeError("backend down")

        scheduler = RefetchScheduler(refetch)
        assert await scheduler.trigger() is None

    @pytest.mark.asyncio
    async def test_periodic_refetch(self):
        calls = []

        async def refetch(token):
            calls.append(token)

        scheduler = RefetchScheduler(refetch, interval=0.01)
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert len(calls) >= 2
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_without_interval_is_noop(self):
        async def refetch(token):
            return None

        scheduler = RefetchScheduler(refetch)
        await scheduler.start()

        assert not scheduler.running
        await scheduler.stop()


class TestDescribeFailure:
    """Test cases for describe_failure."""

    def test_cancelled_is_silent(self):
        assert describe_failure(OperationCancelledError()) is None
        assert describe_failure(None) is None

    def test_schema_cache_exhausted(self):
        error = BackendError("PGRST205", "Could not find the table in the schema cache")
        assert describe_failure(error) == SYNC_STILL_FAILING

    def test_permission_denied(self):
        error = {"code": "42501", "message": "permission denied for table orders"}
        assert describe_failure(error, "save vendor") == "You do not have permission to save vendor."

    def test_duplicate(self):
        error = BackendError("23505", "duplicate key value violates unique constraint")
        assert "already exists" in describe_failure(error, "save vendor")

    def test_generic(self):
        error = BackendError("22P02", "invalid input syntax for type uuid")
        assert describe_failure(error, "load vendors") == (
            "Failed to load vendors: invalid input syntax for type uuid"
        )

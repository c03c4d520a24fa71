"""Tests for the periodic Google Tasks sync job."""

import asyncio
from unittest.mock import Mock, AsyncMock, patch

import pytest

from domains.google_tasks.errors import SyncError
from domains.google_tasks.types import SyncResult, SyncSettings
from jobs.google_tasks_sync import GoogleTasksSyncJob, register_google_tasks_sync


def make_engine(run_sync=None, authenticated=True, enabled=True):
    engine = Mock()
    engine.settings = SyncSettings(client_id="test-client-id", enabled=enabled)
    engine.tokens = Mock()
    engine.tokens.is_authenticated.return_value = authenticated
    engine.run_sync = run_sync or AsyncMock(return_value=SyncResult(created=1))
    return engine


class TestGoogleTasksSyncJob:

    @pytest.mark.asyncio
    async def test_runs_pass(self):
        engine = make_engine()
        result = await GoogleTasksSyncJob(engine).run()

        assert result.created == 1
        engine.run_sync.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tick_skipped_while_pass_in_flight(self):
        release = asyncio.Event()
        calls = []

        async def slow_sync():
            calls.append(1)
            await release.wait()
            return SyncResult()

        job = GoogleTasksSyncJob(make_engine(run_sync=slow_sync))
        first = asyncio.ensure_future(job.run())
        await asyncio.sleep(0)
        assert job.running

        assert await job.run() is None
        release.set()
        await first

        assert len(calls) == 1
        assert not job.running

    @pytest.mark.asyncio
    async def test_sync_error_not_raised(self):
        engine = make_engine(run_sync=AsyncMock(side_effect=SyncError("list lookup failed")))
        job = GoogleTasksSyncJob(engine)

        assert await job.run() is None
        assert not job.running

    @pytest.mark.asyncio
    async def test_reauthorization_prompt_throttled(self):
        now = [1000.0]
        job = GoogleTasksSyncJob(make_engine(authenticated=False), clock=lambda: now[0])

        with patch("jobs.google_tasks_sync.logger") as mock_logger:
            await job.run()
            await job.run()
            now[0] += 301
            await job.run()

        assert mock_logger.warning.call_count == 2

    @pytest.mark.asyncio
    async def test_no_prompt_when_disabled(self):
        job = GoogleTasksSyncJob(make_engine(authenticated=False, enabled=False))

        with patch("jobs.google_tasks_sync.logger") as mock_logger:
            await job.run()

        mock_logger.warning.assert_not_called()


class TestRegister:

    def test_interval_job_registered(self):
        scheduler = Mock()
        job = GoogleTasksSyncJob(make_engine())

        register_google_tasks_sync(scheduler, job, 300)

        args, kwargs = scheduler.add_job.call_args
        assert args == (job.run, "interval")
        assert kwargs["seconds"] == 300
        assert kwargs["id"] == "google_tasks_sync"
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True

"""Tests for the in-process job scheduler."""

import asyncio
from datetime import timedelta

import pytest

from app.core.errors import OperationCancelled
from app.tasks import scheduler as scheduler_module
from app.tasks.scheduler import DEFAULT_INTERVAL, Scheduler, parse_schedule


class TestParseSchedule:
    @pytest.mark.parametrize(
        "schedule, expected",
        [
            ("@daily", timedelta(hours=24)),
            ("0 0 * * *", timedelta(hours=24)),
            ("@hourly", timedelta(hours=1)),
            ("0 * * * *", timedelta(hours=1)),
            ("@every 30m", timedelta(minutes=30)),
            ("@every 6h", timedelta(hours=6)),
            (" @every 12h ", timedelta(hours=12)),
        ],
    )
    def test_known_schedules(self, schedule, expected):
        assert parse_schedule(schedule) == expected

    def test_unknown_schedule_runs_daily(self):
        assert parse_schedule("*/5 * * * *") == DEFAULT_INTERVAL
        assert parse_schedule("") == DEFAULT_INTERVAL


class TestScheduler:
    @pytest.mark.asyncio
    async def test_run_once_returns_result(self):
        scheduler = Scheduler()

        async def job(cancel_event):
            return {"deleted": 3}

        scheduler.add_job("cleanup", "@daily", job)
        assert await scheduler.run_once("cleanup") == {"deleted": 3}
        assert await scheduler.run_once("missing") is None

    @pytest.mark.asyncio
    async def test_jobs_wait_for_first_interval(self):
        scheduler = Scheduler()
        calls = []

        async def job(cancel_event):
            calls.append(cancel_event)

        scheduler.add_job("snapshots", "@daily", job)
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0)
        await scheduler.stop()

        assert calls == []
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_job_runs_each_interval_until_stopped(self, monkeypatch):
        monkeypatch.setitem(scheduler_module.SCHEDULES, "@every 30m", timedelta(milliseconds=10))
        scheduler = Scheduler()
        calls = []

        async def job(cancel_event):
            calls.append(cancel_event.is_set())

        scheduler.add_job("fast", "@every 30m", job)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert len(calls) >= 2
        assert not any(calls)

    @pytest.mark.asyncio
    async def test_failing_job_keeps_its_schedule(self, monkeypatch):
        monkeypatch.setitem(scheduler_module.SCHEDULES, "@every 30m", timedelta(milliseconds=10))
        scheduler = Scheduler()
        attempts = []

        async def job(cancel_event):
            attempts.append(1)
            raise RuntimeError("boom")

        scheduler.add_job("flaky", "@every 30m", job)
        await scheduler.start()
        await asyncio.sleep(0.1)
        await scheduler.stop()
        assert len(attempts) >= 2

    @pytest.mark.asyncio
    async def test_cancelled_job_is_not_an_error(self, caplog):
        scheduler = Scheduler()

        async def job(cancel_event):
            raise OperationCancelled()

        job_entry = scheduler.add_job("cancelled", "@daily", job)
        with caplog.at_level("INFO"):
            await scheduler._execute(job_entry)
        assert "cancelled by shutdown" in caplog.text
        assert "failed" not in caplog.text

    @pytest.mark.asyncio
    async def test_job_added_after_start_waits_for_restart(self):
        scheduler = Scheduler()

        async def job(cancel_event):
            return None

        scheduler.add_job("first", "@daily", job)
        await scheduler.start()
        scheduler.add_job("second", "@daily", job)
        assert [j.name for j in scheduler.jobs] == ["first", "second"]
        assert len(scheduler._tasks) == 1
        await scheduler.stop()

        await scheduler.start()
        assert len(scheduler._tasks) == 2
        await scheduler.stop()

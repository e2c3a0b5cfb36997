"""
Worker scheduler tests - due selection and crash isolation
"""
from datetime import datetime, timedelta, timezone

import pytest

from shiprelay.workers.scheduler import WorkerScheduler

NOW = datetime(2026, 10, 12, 6, 0, tzinfo=timezone.utc)


def _worker(func, interval=300, last_run=None, enabled=True):
    return {"func": func, "interval": interval, "last_run": last_run, "enabled": enabled}


async def _ok():
    return {"success": True, "message": "done"}


async def _crash():
    raise RuntimeError("database unavailable")


class TestDueWorkers:
    def test_never_run_is_due(self):
        scheduler = WorkerScheduler({"sweep": _worker(_ok)})
        assert scheduler.due_workers(NOW) == ["sweep"]

    def test_interval_respected(self):
        scheduler = WorkerScheduler(
            {
                "fresh": _worker(_ok, last_run=NOW - timedelta(seconds=60)),
                "stale": _worker(_ok, last_run=NOW - timedelta(seconds=300)),
            }
        )
        assert scheduler.due_workers(NOW) == ["stale"]

    def test_disabled_never_due(self):
        scheduler = WorkerScheduler({"ping": _worker(_ok, enabled=False)})
        assert scheduler.due_workers(NOW) == []


class TestRunWorker:
    @pytest.mark.asyncio
    async def test_success_records_last_run(self):
        config = _worker(_ok)
        scheduler = WorkerScheduler({"sweep": config})

        result = await scheduler.run_worker("sweep", config)

        assert result["success"] is True
        assert config["last_run"] is not None

    @pytest.mark.asyncio
    async def test_crash_is_contained(self):
        config = _worker(_crash)
        scheduler = WorkerScheduler({"sweep": config})

        result = await scheduler.run_worker("sweep", config)

        assert result["success"] is False
        assert "database unavailable" in result["message"]
        assert config["last_run"] is not None

    @pytest.mark.asyncio
    async def test_overlapping_run_skipped(self):
        config = _worker(_ok)
        scheduler = WorkerScheduler({"sweep": config})
        scheduler._in_flight.add("sweep")

        result = await scheduler.run_worker("sweep", config)

        assert result == {"success": False, "message": "already running"}

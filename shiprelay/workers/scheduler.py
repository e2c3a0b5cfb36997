"""
Worker Scheduler Configuration

Registers and schedules background workers: the due-shipment tracking sweep and
the optional keep-alive self ping.
"""

import logging
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from shiprelay.config import settings
from shiprelay.workers.keep_alive_worker import run_keep_alive_worker
from shiprelay.workers.tracking_sweep_worker import run_tracking_sweep_worker

logger = logging.getLogger(__name__)

# Seconds between scheduler ticks
TICK_SEC = 30


class WorkerScheduler:
    """Scheduler for running background workers at specified intervals."""

    def __init__(self, workers: Optional[Dict[str, Dict[str, Any]]] = None):
        if workers is None:
            workers = {
                "tracking_sweep": {
                    "func": run_tracking_sweep_worker,
                    "interval": settings.TRACKING_SWEEP_INTERVAL_SEC,
                    "last_run": None,
                    "enabled": settings.TRACKING_SWEEP_INTERVAL_SEC > 0,
                },
                "keep_alive": {
                    "func": run_keep_alive_worker,
                    "interval": settings.SELF_PING_INTERVAL_SEC,
                    "last_run": None,
                    "enabled": bool(settings.SELF_PING_URL),
                },
            }
        self.workers = workers
        self.running = False
        self._in_flight: set = set()

    async def run_worker(self, worker_name: str, worker_config: Dict[str, Any]) -> Dict[str, Any]:
        """Run a single worker and log results. Never raises."""
        if worker_name in self._in_flight:
            logger.debug("Worker %s still running, skipping tick", worker_name)
            return {"success": False, "message": "already running"}
        self._in_flight.add(worker_name)
        try:
            logger.debug("Starting worker: %s", worker_name)
            result = await worker_config["func"]()
            if result.get("success", False):
                logger.info("Worker %s completed: %s", worker_name, result.get("message", "No message"))
            else:
                logger.error("Worker %s failed: %s", worker_name, result.get("message", "Unknown error"))
            return result
        except Exception as e:
            logger.exception("Worker %s crashed: %s", worker_name, e)
            return {
                "success": False,
                "message": f"Worker crashed: {str(e)}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        finally:
            worker_config["last_run"] = datetime.now(timezone.utc)
            self._in_flight.discard(worker_name)

    def due_workers(self, now: datetime) -> list[str]:
        due = []
        for worker_name, worker_config in self.workers.items():
            if not worker_config["enabled"]:
                continue
            last_run = worker_config["last_run"]
            if last_run is None or (now - last_run).total_seconds() >= worker_config["interval"]:
                due.append(worker_name)
        return due

    async def start_scheduler(self):
        """Start the background worker scheduler."""
        self.running = True
        enabled = [name for name, cfg in self.workers.items() if cfg["enabled"]]
        logger.info("Worker scheduler started: %s", ", ".join(enabled) or "no workers enabled")

        while self.running:
            for worker_name in self.due_workers(datetime.now(timezone.utc)):
                asyncio.create_task(self.run_worker(worker_name, self.workers[worker_name]))
            await asyncio.sleep(TICK_SEC)

    def stop_scheduler(self):
        """Stop the background worker scheduler."""
        self.running = False
        logger.info("Worker scheduler stopped")

    def get_worker_status(self) -> Dict[str, Any]:
        """Get current status of all workers."""
        status = {}
        for worker_name, worker_config in self.workers.items():
            last_run = worker_config["last_run"]
            next_run = last_run + timedelta(seconds=worker_config["interval"]) if last_run else None
            status[worker_name] = {
                "enabled": worker_config["enabled"],
                "last_run": last_run.isoformat() if last_run else None,
                "next_run": next_run.isoformat() if next_run else None,
                "interval_seconds": worker_config["interval"],
                "status": "running" if self.running else "stopped",
            }
        return status


# Global scheduler instance
scheduler = WorkerScheduler()


def start_background_workers():
    """Start the background worker scheduler."""
    asyncio.create_task(scheduler.start_scheduler())


def stop_background_workers():
    """Stop the background worker scheduler."""
    scheduler.stop_scheduler()


def get_workers_status() -> Dict[str, Any]:
    """Get status of all background workers."""
    return scheduler.get_worker_status()

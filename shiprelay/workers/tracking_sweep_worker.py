"""
Tracking Sweep Worker

Re-tracks shipments whose next_check_at is due and writes the result back.
Same work as POST /_cron/track/run, on a timer.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from shiprelay.config import settings
from shiprelay.database import SessionLocal
from shiprelay.services.providers import get_tracker
from shiprelay.services.reconciliation import sweep

logger = logging.getLogger(__name__)


async def run_tracking_sweep_worker() -> Dict[str, Any]:
    """One sweep pass with its own session."""
    db = SessionLocal()
    try:
        result = await sweep(db, get_tracker(), max_batch=settings.SWEEP_MAX_BATCH)
        return {
            "success": True,
            "message": f"processed {result['processed']} shipment(s)",
            "processed": result["processed"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    finally:
        db.close()

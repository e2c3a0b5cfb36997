"""
Cron hooks for external schedulers (Render cron, GitHub Actions, cron-job.org).
Guarded by X-Cron-Secret when CRON_SECRET is configured.
"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from shiprelay.config import settings
from shiprelay.database import get_db
from shiprelay.services.credential_cache import CredentialCache
from shiprelay.services.providers import get_credential_cache, get_tracker
from shiprelay.services.reconciliation import sweep
from shiprelay.services.tracking import CarrierTracker
from shiprelay.workers.scheduler import get_workers_status

logger = logging.getLogger(__name__)
router = APIRouter()


def require_cron_secret(x_cron_secret: Optional[str] = Header(None)) -> None:
    expected = settings.CRON_SECRET
    if not expected:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.strip(), expected):
        logger.warning("Cron call rejected: bad or missing X-Cron-Secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


@router.post("/_cron/track/run", dependencies=[Depends(require_cron_secret)])
async def run_tracking_sweep(
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
    tracker: CarrierTracker = Depends(get_tracker),
):
    """Re-track due shipments now."""
    result = await sweep(db, tracker, max_batch=limit)
    return {"ok": True, "processed": result["processed"]}


@router.get("/_cron/status", dependencies=[Depends(require_cron_secret)])
async def cron_status(credentials: CredentialCache = Depends(get_credential_cache)):
    """Background worker schedule and carrier token ages."""
    return {"workers": get_workers_status(), "credentials": credentials.describe()}

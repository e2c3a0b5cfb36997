"""
Live shipment tracking by AWB (GET ?awb= or POST {awb}).
Known AWBs are written back as a side effect, same as a sweep would.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from shiprelay.database import get_db
from shiprelay.http.requests.schemas import TrackRequest
from shiprelay.services.credential_cache import CredentialError
from shiprelay.services.providers import get_tracker
from shiprelay.services.shipment_persistence import persist_tracking
from shiprelay.services.tracking import CarrierTracker

logger = logging.getLogger(__name__)
router = APIRouter()


async def _track(awb: Optional[str], db: Session, tracker: CarrierTracker) -> dict:
    awb = (awb or "").strip()
    if not awb:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="awb is required")
    try:
        snapshot = await tracker.track(awb)
    except CredentialError as e:
        logger.error("Track awb=%s: %s", awb, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.to_detail())
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No tracking found for AWB {awb}")

    try:
        persist_tracking(db, awb, snapshot)
    except Exception as e:
        # Caller still gets the live status; next sweep retries the write
        logger.error("Track awb=%s: persist failed: %s", awb, e)
    return snapshot.to_dict()


@router.get("/track")
async def track_get(
    awb: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    tracker: CarrierTracker = Depends(get_tracker),
):
    return await _track(awb, db, tracker)


@router.post("/track")
async def track_post(
    request: TrackRequest,
    db: Session = Depends(get_db),
    tracker: CarrierTracker = Depends(get_tracker),
):
    return await _track(request.awb, db, tracker)

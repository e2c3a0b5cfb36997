"""
COD reconciliation: unpaid cash-on-delivery orders the carrier already delivered.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shiprelay.database import get_db
from shiprelay.services.providers import get_tracker
from shiprelay.services.reconciliation import reconcile_cod
from shiprelay.services.tracking import CarrierTracker

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/reconciliation/cod")
async def cod_reconciliation(
    db: Session = Depends(get_db),
    tracker: CarrierTracker = Depends(get_tracker),
):
    return await reconcile_cod(db, tracker)

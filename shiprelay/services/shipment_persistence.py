"""
Write a tracking snapshot back to its shipment row.
Row is locked for the read-classify-write, so a webhook-triggered /track and the
sweep cannot interleave on the same AWB. Delivered shipments are frozen.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from shiprelay.models import Shipment, ShipmentScan
from shiprelay.services.ops_classifier import ClassifierPolicy, classify
from shiprelay.services.tracking import TrackingSnapshot

logger = logging.getLogger(__name__)


def _append_scans(db: Session, shipment: Shipment, snapshot: TrackingSnapshot) -> int:
    """Insert scans not already stored for this shipment. Returns number added."""
    existing = {
        (row.scan_date, row.description)
        for row in db.query(ShipmentScan.scan_date, ShipmentScan.description)
        .filter(ShipmentScan.shipment_id == shipment.id)
        .all()
    }
    added = 0
    for scan in snapshot.scans:
        key = (scan.date or "", scan.description or "")
        if key in existing:
            continue
        existing.add(key)
        db.add(
            ShipmentScan(
                shipment_id=shipment.id,
                scan_date=key[0],
                location=scan.location,
                description=key[1],
            )
        )
        added += 1
    return added


def persist_tracking(
    db: Session,
    awb: str,
    snapshot: TrackingSnapshot,
    now: Optional[datetime] = None,
    policy: Optional[ClassifierPolicy] = None,
) -> bool:
    """
    Apply snapshot to the shipment with this AWB in one commit.
    Returns True when the row was updated, False for unknown / already delivered AWBs.
    Any database error rolls back and propagates.
    """
    now = now or datetime.now(timezone.utc)
    policy = policy or ClassifierPolicy.from_settings()
    try:
        shipment = db.query(Shipment).filter(Shipment.awb == awb).with_for_update().first()
        if not shipment:
            logger.info("persist_tracking: unknown awb=%s, skipping", awb)
            db.rollback()
            return False
        if shipment.delivered_at is not None:
            logger.info("persist_tracking: awb=%s already delivered, skipping", awb)
            db.rollback()
            return False

        ops_flag, next_check_at = classify(
            shipment, snapshot.status, now, delivered=snapshot.delivered, policy=policy
        )

        shipment.last_known_status = snapshot.status
        if snapshot.actual_courier:
            shipment.actual_courier = snapshot.actual_courier
        if snapshot.delivered:
            shipment.delivered_at = now
        shipment.next_check_at = next_check_at
        shipment.ops_flag = ops_flag
        shipment.ndr_reason = snapshot.ndr_reason
        shipment.last_checked_at = now
        shipment.updated_at = now
        scans_added = _append_scans(db, shipment, snapshot)

        db.commit()
    except Exception:
        db.rollback()
        logger.exception("persist_tracking failed awb=%s", awb)
        raise

    logger.info(
        "Tracking saved awb=%s status=%s flag=%s next_check=%s scans+%s",
        awb,
        snapshot.status,
        ops_flag.value if ops_flag else None,
        next_check_at.isoformat(),
        scans_added,
    )
    return True

"""
Reconciliation drivers.

sweep: re-track shipments whose next_check_at is due, persist each result.
reconcile_cod: find unpaid COD orders whose parcel the carrier already reports delivered.

Within a batch / chunk every lookup runs in parallel; chunks run one after another
with a fixed pause. Results are always reported in input order.
"""
import asyncio
import logging
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from shiprelay.config import settings
from shiprelay.models import Order, Shipment
from shiprelay.services.shipment_persistence import persist_tracking
from shiprelay.services.tracking import CarrierTracker, TrackingSnapshot

logger = logging.getLogger(__name__)

COD_LEAK = "COD_LEAK"

# Matches "cod", "Cash on Delivery (COD)", "cash_on_delivery", but not "barcode"
COD_GATEWAY_RE = re.compile(r"\bcod\b|cash[ _]on[ _]delivery")


def is_cod_order(payment_gateway_names: Optional[Iterable[str]]) -> bool:
    for name in payment_gateway_names or []:
        if isinstance(name, str) and COD_GATEWAY_RE.search(name.lower()):
            return True
    return False


def _chunks(items: list, size: int):
    size = max(1, int(size))
    for i in range(0, len(items), size):
        yield items[i : i + size]


async def _track_all(tracker: CarrierTracker, awbs: list[str]) -> list:
    """Parallel lookups; each slot holds a snapshot, None, or the exception raised for that AWB."""
    return await asyncio.gather(*(tracker.track(awb) for awb in awbs), return_exceptions=True)


async def sweep(
    db: Session,
    tracker: CarrierTracker,
    max_batch: Optional[int] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Re-track due shipments (oldest due first). Returns {"processed": n}."""
    now = now or datetime.now(timezone.utc)
    max_batch = max_batch or settings.SWEEP_MAX_BATCH
    due = (
        db.query(Shipment.awb)
        .filter(Shipment.next_check_at <= now, Shipment.delivered_at.is_(None))
        .order_by(Shipment.next_check_at.asc())
        .limit(max_batch)
        .all()
    )
    awbs = [row.awb for row in due]
    if not awbs:
        logger.debug("Sweep: nothing due")
        return {"processed": 0}

    logger.info("Sweep: %s shipment(s) due", len(awbs))
    results = await _track_all(tracker, awbs)

    processed = 0
    for awb, result in zip(awbs, results):
        if isinstance(result, BaseException):
            logger.warning("Sweep: tracking failed awb=%s: %s", awb, result)
            continue
        if result is None:
            logger.info("Sweep: no carrier result for awb=%s", awb)
            continue
        try:
            if persist_tracking(db, awb, result, now=now):
                processed += 1
        except Exception as e:
            logger.error("Sweep: persist failed awb=%s: %s", awb, e)
    logger.info("Sweep: processed %s/%s", processed, len(awbs))
    return {"processed": processed}


def _cod_candidates(db: Session, since: datetime) -> list[tuple[Order, str]]:
    """Unpaid COD orders since `since`, newest first, paired with their first shipment's AWB."""
    orders = (
        db.query(Order)
        .filter(Order.created_at >= since)
        .order_by(Order.created_at.desc(), Order.id.asc())
        .all()
    )
    candidates = []
    for order in orders:
        if (order.financial_status or "").lower() == "paid":
            continue
        if not is_cod_order(order.payment_gateway_names):
            continue
        shipment = next((s for s in order.shipments if s.awb), None)
        if shipment is None:
            logger.debug("COD: order %s has no shipment yet", order.id)
            continue
        candidates.append((order, shipment.awb))
    return candidates


def _leak_entry(order: Order, awb: str, snapshot: TrackingSnapshot) -> dict:
    total = order.total_price if order.total_price is not None else Decimal("0")
    return {
        "orderId": order.id,
        "orderNumber": order.order_number,
        "awb": awb,
        "totalPrice": float(total),
        "financialStatus": order.financial_status,
        "status": snapshot.status,
        "issue": COD_LEAK,
    }


async def reconcile_cod(
    db: Session,
    tracker: CarrierTracker,
    now: Optional[datetime] = None,
    *,
    lookback_days: Optional[int] = None,
    chunk_size: Optional[int] = None,
    pause_sec: Optional[float] = None,
) -> dict:
    """{checked, leaksFound, leaks[]} over unpaid COD orders from the lookback window."""
    now = now or datetime.now(timezone.utc)
    lookback_days = lookback_days if lookback_days is not None else settings.COD_LOOKBACK_DAYS
    chunk_size = chunk_size or settings.COD_CHUNK_SIZE
    pause_sec = pause_sec if pause_sec is not None else settings.COD_CHUNK_PAUSE_SEC

    candidates = _cod_candidates(db, now - timedelta(days=lookback_days))
    logger.info("COD reconciliation: %s candidate(s)", len(candidates))

    leaks = []
    chunks = list(_chunks(candidates, chunk_size))
    for index, chunk in enumerate(chunks):
        if index > 0 and pause_sec > 0:
            await asyncio.sleep(pause_sec)
        results = await _track_all(tracker, [awb for _, awb in chunk])
        for (order, awb), result in zip(chunk, results):
            if isinstance(result, BaseException):
                logger.warning("COD: tracking failed order=%s awb=%s: %s", order.id, awb, result)
                continue
            if result is not None and result.delivered:
                leaks.append(_leak_entry(order, awb, result))

    if leaks:
        logger.warning("COD reconciliation: %s leak(s) found", len(leaks))
    return {"checked": len(candidates), "leaksFound": len(leaks), "leaks": leaks}

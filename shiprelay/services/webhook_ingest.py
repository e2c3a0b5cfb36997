"""
Shopify webhook ingest: HMAC verification, then order / shipment upserts.

Runs after the HTTP 200 has been sent, so nothing here can reach the caller.
A bad signature is a silent discard (warning log). Each tail is recorded as a
WebhookEvent with its outcome.
"""
import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shiprelay.models import Order, Shipment, WebhookEvent
from shiprelay.services.date_utils import as_utc
from shiprelay.services.tracking import infer_courier_source

logger = logging.getLogger(__name__)

SOURCE_SHOPIFY = "shopify"
TOPIC_ORDERS_PAID = "orders/paid"
TOPIC_FULFILLMENTS_CREATE = "fulfillments/create"


def verify_webhook_hmac(body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """
    Verify X-Shopify-Hmac-Sha256: HMAC-SHA256(raw_body, secret) base64 == header.
    """
    if not secret or not hmac_header or not body:
        return False
    try:
        computed = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
        computed_b64 = base64.b64encode(computed).decode("utf-8")
        return hmac.compare_digest(computed_b64, hmac_header.strip())
    except Exception as e:
        logger.warning("Webhook HMAC verify error: %s", e)
        return False


def _parse_payload(raw_body: bytes) -> Optional[dict]:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning("Webhook: body is not JSON: %s", e)
        return None
    return payload if isinstance(payload, dict) else None


def _parse_timestamp(value) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def _decimal(value) -> Decimal:
    try:
        return Decimal(str(value if value not in (None, "") else "0"))
    except InvalidOperation:
        return Decimal("0")


def _gateway_names(payload: dict) -> list[str]:
    names = payload.get("payment_gateway_names") or []
    if isinstance(names, str):
        names = [names]
    return [str(n) for n in names if n]


def upsert_order(db: Session, payload: dict) -> Optional[str]:
    """
    Insert the order, or update only its mutable fields (financial / fulfillment
    status, payment gateways). Totals and identity are never overwritten.
    """
    order_id = str(payload.get("id") or "").strip()
    if not order_id:
        logger.warning("Order webhook: payload has no id")
        return None

    financial_status = payload.get("financial_status")
    fulfillment_status = payload.get("fulfillment_status")
    gateways = _gateway_names(payload)

    existing = db.query(Order).filter(Order.id == order_id).first()
    if existing:
        # Partial payloads leave absent fields as they are
        if "financial_status" in payload:
            existing.financial_status = financial_status
        if "fulfillment_status" in payload:
            existing.fulfillment_status = fulfillment_status
        if "payment_gateway_names" in payload:
            existing.payment_gateway_names = gateways
        db.commit()
        logger.info("Order %s updated: financial_status=%s", order_id, financial_status)
        return order_id

    order = Order(
        id=order_id,
        order_number=str(payload.get("order_number") or payload.get("name") or "") or None,
        financial_status=financial_status,
        fulfillment_status=fulfillment_status,
        total_price=_decimal(payload.get("total_price")),
        payment_gateway_names=gateways,
    )
    created_at = _parse_timestamp(payload.get("created_at"))
    if created_at:
        order.created_at = created_at
    db.add(order)
    try:
        db.commit()
    except IntegrityError:
        # Lost an insert race with a concurrent delivery of the same order
        db.rollback()
        return upsert_order(db, payload)
    logger.info("Order %s created", order_id)
    return order_id


def _tracking_numbers(payload: dict) -> list[str]:
    numbers = payload.get("tracking_numbers") or []
    if isinstance(numbers, (str, int)):
        numbers = [numbers]
    numbers = list(numbers)
    if payload.get("tracking_number"):
        numbers.insert(0, payload["tracking_number"])
    seen = []
    for n in numbers:
        awb = str(n or "").strip()
        if awb and awb not in seen:
            seen.append(awb)
    return seen


def insert_shipments(db: Session, payload: dict, now: Optional[datetime] = None) -> list[str]:
    """
    One shipment row per tracking number. Existing AWBs are left untouched.
    Returns the AWBs that were inserted.
    """
    now = now or datetime.now(timezone.utc)
    order_id = str(payload.get("order_id") or "").strip() or None
    fulfillment_id = str(payload.get("id") or "").strip() or None
    tracking_company = (payload.get("tracking_company") or "").strip() or None
    courier_source = infer_courier_source(tracking_company)
    created_at = _parse_timestamp(payload.get("created_at")) or now

    numbers = _tracking_numbers(payload)
    if not numbers:
        logger.info("Fulfillment webhook: no tracking number (fulfillment=%s)", fulfillment_id)
        return []

    inserted = []
    for awb in numbers:
        if db.query(Shipment.id).filter(Shipment.awb == awb).first():
            logger.info("Fulfillment webhook: awb=%s already known, ignoring", awb)
            continue
        db.add(
            Shipment(
                awb=awb,
                order_id=order_id,
                fulfillment_id=fulfillment_id,
                courier_source=courier_source,
                tracking_company=tracking_company,
                next_check_at=now,
                created_at=created_at,
                updated_at=now,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("Fulfillment webhook: awb=%s inserted concurrently, ignoring", awb)
            continue
        inserted.append(awb)
        logger.info("Shipment created awb=%s order=%s courier=%s", awb, order_id, courier_source.value)
    return inserted


def ingest_order(db: Session, raw_body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> Optional[str]:
    """Verify then upsert an orders/paid payload. Returns the order id, or None when discarded."""
    if not verify_webhook_hmac(raw_body, hmac_header, secret):
        logger.warning("Order webhook: HMAC verification failed, discarding")
        return None
    payload = _parse_payload(raw_body)
    if payload is None:
        return None
    return upsert_order(db, payload)


def ingest_fulfillment(
    db: Session,
    raw_body: bytes,
    hmac_header: Optional[str],
    secret: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[list[str]]:
    """Verify then record a fulfillments/create payload. Returns inserted AWBs, or None when discarded."""
    if not verify_webhook_hmac(raw_body, hmac_header, secret):
        logger.warning("Fulfillment webhook: HMAC verification failed, discarding")
        return None
    payload = _parse_payload(raw_body)
    if payload is None:
        return None
    return insert_shipments(db, payload, now=now)


INGESTERS = {
    TOPIC_ORDERS_PAID: ingest_order,
    TOPIC_FULFILLMENTS_CREATE: ingest_fulfillment,
}


def _summarize(result) -> str:
    if result is None:
        return "discarded"
    if isinstance(result, list):
        return f"shipments created: {', '.join(result) or 'none'}"
    return f"order {result}"


def process_webhook(
    session_factory: Callable[[], Session],
    topic: str,
    raw_body: bytes,
    hmac_header: Optional[str],
    secret: Optional[str],
) -> None:
    """
    Background tail for a webhook that has already been acknowledged.
    Opens its own session; failures are logged and stored on the WebhookEvent.
    """
    ingest = INGESTERS[topic]
    db = session_factory()
    event = WebhookEvent(source=SOURCE_SHOPIFY, topic=topic)
    try:
        result = ingest(db, raw_body, hmac_header, secret)
        event.payload_summary = _summarize(result)
    except Exception as e:
        db.rollback()
        logger.exception("Webhook %s processing failed", topic)
        event.error = str(e)[:1000]
    try:
        event.processed_at = datetime.now(timezone.utc)
        db.add(event)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("Webhook %s: could not record event: %s", topic, e)
    finally:
        db.close()

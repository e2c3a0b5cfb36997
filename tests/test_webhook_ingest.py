"""
Webhook ingest tests - HMAC check, order upsert, fulfillment → shipment rows
"""
from datetime import timedelta
from decimal import Decimal

from shiprelay.models import CourierSource, Order, Shipment, WebhookEvent
from shiprelay.services.date_utils import as_utc
from shiprelay.services.webhook_ingest import (
    TOPIC_FULFILLMENTS_CREATE,
    TOPIC_ORDERS_PAID,
    ingest_fulfillment,
    ingest_order,
    process_webhook,
    verify_webhook_hmac,
)

from factories import WEBHOOK_SECRET, sign, webhook_body


def _order_payload(**overrides):
    payload = {
        "id": 5550001,
        "order_number": 1042,
        "financial_status": "pending",
        "fulfillment_status": None,
        "total_price": "1899.00",
        "payment_gateway_names": ["Cash on Delivery (COD)"],
        "created_at": "2026-10-10T11:20:00+05:30",
    }
    payload.update(overrides)
    return payload


def _fulfillment_payload(**overrides):
    payload = {
        "id": 8880001,
        "order_id": 5550001,
        "tracking_company": "Blue Dart",
        "tracking_number": "81234567890",
        "tracking_numbers": ["81234567890"],
        "created_at": "2026-10-11T09:00:00+05:30",
    }
    payload.update(overrides)
    return payload


def _ingest_order(db, payload):
    body = webhook_body(payload)
    return ingest_order(db, body, sign(body), WEBHOOK_SECRET)


def _ingest_fulfillment(db, payload, now=None):
    body = webhook_body(payload)
    return ingest_fulfillment(db, body, sign(body), WEBHOOK_SECRET, now=now)


class TestHmac:
    def test_valid_signature(self):
        body = b'{"id": 1}'
        assert verify_webhook_hmac(body, sign(body), WEBHOOK_SECRET)

    def test_tampered_body(self):
        assert not verify_webhook_hmac(b'{"id": 2}', sign(b'{"id": 1}'), WEBHOOK_SECRET)

    def test_missing_parts(self):
        body = b'{"id": 1}'
        assert not verify_webhook_hmac(body, None, WEBHOOK_SECRET)
        assert not verify_webhook_hmac(body, sign(body), "")
        assert not verify_webhook_hmac(b"", sign(b""), WEBHOOK_SECRET)


class TestIngestOrder:
    def test_creates_order(self, db_session):
        assert _ingest_order(db_session, _order_payload()) == "5550001"

        order = db_session.query(Order).one()
        assert order.order_number == "1042"
        assert order.total_price == Decimal("1899.00")
        assert order.payment_gateway_names == ["Cash on Delivery (COD)"]
        assert as_utc(order.created_at).hour == 5  # 11:20 IST

    def test_absent_status_fields_left_untouched(self, db_session):
        _ingest_order(db_session, _order_payload(financial_status="paid", fulfillment_status="fulfilled"))
        _ingest_order(db_session, {"id": 5550001, "total_price": "1899.00"})

        order = db_session.query(Order).one()
        assert order.financial_status == "paid"
        assert order.fulfillment_status == "fulfilled"
        assert order.payment_gateway_names == ["Cash on Delivery (COD)"]

    def test_update_touches_only_mutable_fields(self, db_session):
        _ingest_order(db_session, _order_payload())
        _ingest_order(
            db_session,
            _order_payload(
                financial_status="paid",
                fulfillment_status="fulfilled",
                total_price="1.00",
                order_number=9999,
                payment_gateway_names=["razorpay"],
            ),
        )

        order = db_session.query(Order).one()
        assert order.financial_status == "paid"
        assert order.fulfillment_status == "fulfilled"
        assert order.payment_gateway_names == ["razorpay"]
        assert order.total_price == Decimal("1899.00")
        assert order.order_number == "1042"

    def test_bad_signature_discarded(self, db_session):
        body = webhook_body(_order_payload())
        assert ingest_order(db_session, body, sign(body, "other-secret"), WEBHOOK_SECRET) is None
        assert db_session.query(Order).count() == 0

    def test_non_json_discarded(self, db_session):
        body = b"not json"
        assert ingest_order(db_session, body, sign(body), WEBHOOK_SECRET) is None


class TestIngestFulfillment:
    def test_creates_shipment_due_now(self, db_session, now):
        assert _ingest_fulfillment(db_session, _fulfillment_payload(), now=now) == ["81234567890"]

        shipment = db_session.query(Shipment).one()
        assert shipment.order_id == "5550001"
        assert shipment.fulfillment_id == "8880001"
        assert shipment.courier_source == CourierSource.BLUEDART
        assert shipment.tracking_company == "Blue Dart"
        assert as_utc(shipment.next_check_at) == now
        assert shipment.delivered_at is None

    def test_non_bluedart_company_maps_to_shiprocket(self, db_session, now):
        _ingest_fulfillment(db_session, _fulfillment_payload(tracking_company="Delhivery"), now=now)
        assert db_session.query(Shipment).one().courier_source == CourierSource.SHIPROCKET

    def test_duplicate_awb_is_noop(self, db_session, now):
        _ingest_fulfillment(db_session, _fulfillment_payload(tracking_company="Blue Dart"), now=now)
        second = _ingest_fulfillment(
            db_session,
            _fulfillment_payload(id=8880002, tracking_company="Shiprocket"),
            now=now + timedelta(minutes=5),
        )

        assert second == []
        shipment = db_session.query(Shipment).one()
        assert shipment.courier_source == CourierSource.BLUEDART
        assert shipment.fulfillment_id == "8880001"

    def test_one_row_per_tracking_number(self, db_session, now):
        payload = _fulfillment_payload(tracking_number="AWB1", tracking_numbers=["AWB1", "AWB2", " ", "AWB2"])
        assert _ingest_fulfillment(db_session, payload, now=now) == ["AWB1", "AWB2"]
        assert db_session.query(Shipment).count() == 2

    def test_string_tracking_numbers_not_split(self, db_session, now):
        payload = _fulfillment_payload(tracking_number=None, tracking_numbers="AWB77")
        assert _ingest_fulfillment(db_session, payload, now=now) == ["AWB77"]
        assert db_session.query(Shipment).one().awb == "AWB77"

    def test_no_tracking_number(self, db_session, now):
        payload = _fulfillment_payload(tracking_number=None, tracking_numbers=[])
        assert _ingest_fulfillment(db_session, payload, now=now) == []
        assert db_session.query(Shipment).count() == 0

    def test_bad_signature_discarded(self, db_session):
        body = webhook_body(_fulfillment_payload())
        assert ingest_fulfillment(db_session, body, "bm90LWEtc2lnbmF0dXJl", WEBHOOK_SECRET) is None
        assert db_session.query(Shipment).count() == 0


class TestProcessWebhook:
    def test_records_event(self, db_session, session_factory):
        body = webhook_body(_order_payload())
        process_webhook(session_factory, TOPIC_ORDERS_PAID, body, sign(body), WEBHOOK_SECRET)

        event = db_session.query(WebhookEvent).one()
        assert event.topic == TOPIC_ORDERS_PAID
        assert event.payload_summary == "order 5550001"
        assert event.error is None
        assert event.processed_at is not None

    def test_discard_recorded(self, db_session, session_factory):
        body = webhook_body(_fulfillment_payload())
        process_webhook(session_factory, TOPIC_FULFILLMENTS_CREATE, body, "bad", WEBHOOK_SECRET)

        event = db_session.query(WebhookEvent).one()
        assert event.payload_summary == "discarded"
        assert db_session.query(Shipment).count() == 0

    def test_failure_stored_on_event(self, db_session, session_factory, monkeypatch):
        from shiprelay.services import webhook_ingest

        def boom(db, payload, now=None):
            raise RuntimeError("db went away")

        monkeypatch.setattr(webhook_ingest, "insert_shipments", boom)
        body = webhook_body(_fulfillment_payload())
        process_webhook(session_factory, TOPIC_FULFILLMENTS_CREATE, body, sign(body), WEBHOOK_SECRET)

        event = db_session.query(WebhookEvent).one()
        assert event.error == "db went away"

"""
Shared fixtures: in-memory SQLite session, fake carrier adapters, API client.
Env is set before any shiprelay import; Settings reads it at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["TRACKING_SWEEP_INTERVAL_SEC"] = "0"
os.environ["SELF_PING_URL"] = ""
os.environ["CRON_SECRET"] = ""
os.environ["COD_CHUNK_PAUSE_SEC"] = "0"

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shiprelay import models  # noqa: F401 - register models with Base
from shiprelay.database import Base
from shiprelay.models import CourierSource, Shipment
from factories import FakeCarrier, FakeGeo


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    return datetime(2026, 10, 12, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_shipment(db_session, now):
    def _make(awb="BD123", **fields) -> Shipment:
        values = {
            "awb": awb,
            "order_id": "1001",
            "courier_source": CourierSource.BLUEDART,
            "next_check_at": now,
            "created_at": now,
        }
        values.update(fields)
        shipment = Shipment(**values)
        db_session.add(shipment)
        db_session.commit()
        return shipment

    return _make


@pytest.fixture
def bluedart():
    return FakeCarrier(CourierSource.BLUEDART)


@pytest.fixture
def shiprocket():
    return FakeCarrier(CourierSource.SHIPROCKET)


@pytest.fixture
def geo():
    return FakeGeo({"400099": "Mumbai", "411022": "Pune", "781001": "Kamrup Metropolitan"})


@pytest.fixture
def client(db_session, session_factory, bluedart, shiprocket, geo, monkeypatch):
    """TestClient with DB, carriers and the webhook session factory swapped for test doubles."""
    from fastapi.testclient import TestClient

    import main
    from shiprelay.database import get_db
    from shiprelay.http.controllers import webhooks
    from shiprelay.services.edd_service import EddEstimator
    from shiprelay.services.providers import get_edd_estimator, get_tracker
    from shiprelay.services.tracking import CarrierTracker

    def _get_db():
        yield db_session

    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[get_tracker] = lambda: CarrierTracker([bluedart, shiprocket])
    main.app.dependency_overrides[get_edd_estimator] = lambda: EddEstimator([bluedart, shiprocket], geo=geo)
    monkeypatch.setattr(webhooks, "SessionLocal", session_factory)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()

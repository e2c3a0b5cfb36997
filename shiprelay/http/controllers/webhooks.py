"""
Shopify webhook receivers. Public (no auth); HMAC is verified in the background tail.
Both routes acknowledge immediately so Shopify never retries on our latency.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Request

from shiprelay.config import settings
from shiprelay.database import SessionLocal
from shiprelay.services.webhook_ingest import (
    TOPIC_FULFILLMENTS_CREATE,
    TOPIC_ORDERS_PAID,
    process_webhook,
)

logger = logging.getLogger(__name__)
router = APIRouter()

HMAC_HEADER = "X-Shopify-Hmac-Sha256"


async def _accept(request: Request, background_tasks: BackgroundTasks, topic: str) -> dict:
    raw_body = await request.body()
    hmac_header = request.headers.get(HMAC_HEADER)
    logger.info("Shopify webhook %s received (%s bytes)", topic, len(raw_body))
    background_tasks.add_task(
        process_webhook,
        SessionLocal,
        topic,
        raw_body,
        hmac_header,
        settings.SHOPIFY_WEBHOOK_SECRET,
    )
    return {"ok": True}


@router.post("/webhooks/orders_paid")
async def orders_paid(request: Request, background_tasks: BackgroundTasks):
    return await _accept(request, background_tasks, TOPIC_ORDERS_PAID)


@router.post("/webhooks/fulfillments_create")
async def fulfillments_create(request: Request, background_tasks: BackgroundTasks):
    return await _accept(request, background_tasks, TOPIC_FULFILLMENTS_CREATE)

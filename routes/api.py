"""
Central route registration. All HTTP controllers are mounted here.
Paths sit at the root (no /api prefix): storefront widget, Shopify and the cron
provider are configured with these exact URLs.
"""
import logging
from fastapi import FastAPI

from shiprelay.http.controllers import (
    cron,
    edd,
    ops,
    reconciliation,
    tracking,
    webhooks,
)

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI) -> None:
    """Register all routers. Call from main.py after creating the FastAPI app."""
    app.include_router(edd.router, tags=["edd"])
    app.include_router(tracking.router, tags=["tracking"])
    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(cron.router, tags=["cron"])
    app.include_router(reconciliation.router, tags=["reconciliation"])
    app.include_router(ops.router, tags=["ops"])

"""
Ops dashboard feed: recent orders with their shipments' tracking state.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from shiprelay.database import get_db
from shiprelay.models import Order, Shipment

logger = logging.getLogger(__name__)
router = APIRouter()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _shipment_dict(s: Shipment) -> dict:
    return {
        "awb": s.awb,
        "courierSource": s.courier_source.value if s.courier_source else None,
        "trackingCompany": s.tracking_company,
        "actualCourier": s.actual_courier,
        "lastKnownStatus": s.last_known_status,
        "opsFlag": s.ops_flag.value if s.ops_flag else None,
        "ndrReason": s.ndr_reason,
        "deliveredAt": _iso(s.delivered_at),
        "nextCheckAt": _iso(s.next_check_at),
        "lastCheckedAt": _iso(s.last_checked_at),
    }


@router.get("/ops/orders")
async def recent_orders(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    orders = db.query(Order).order_by(Order.created_at.desc()).limit(limit).all()
    return {
        "orders": [
            {
                "id": o.id,
                "orderNumber": o.order_number,
                "financialStatus": o.financial_status,
                "fulfillmentStatus": o.fulfillment_status,
                "totalPrice": float(o.total_price) if o.total_price is not None else 0.0,
                "paymentGatewayNames": o.payment_gateway_names or [],
                "createdAt": _iso(o.created_at),
                "shipments": [_shipment_dict(s) for s in o.shipments],
            }
            for o in orders
        ]
    }

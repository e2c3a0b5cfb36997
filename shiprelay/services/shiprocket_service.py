"""
Shiprocket external API client.
- Auth: POST /auth/login {email, password} → token (Bearer, valid ~10 days)
- Tracking: GET /courier/track/awb/{awb}
- Serviceability (EDD fallback): GET /courier/serviceability/?pickup_postcode=&delivery_postcode=&weight=&cod=0
Lookups never raise: HTTP errors, HTML error pages and odd payloads return None.
"""
import logging
from datetime import date
from typing import Any, Optional

import httpx

from shiprelay.config import settings
from shiprelay.models import CourierSource
from shiprelay.services.credential_cache import CredentialCache, CredentialError
from shiprelay.services.date_utils import parse_carrier_date
from shiprelay.services.http_client import get_with_retry, json_or_none, post_no_retry
from shiprelay.services.tracking import ScanEvent, TrackingSnapshot

logger = logging.getLogger(__name__)

CARRIER = CourierSource.SHIPROCKET.value

# tracking_data.shipment_status code for "Delivered"
DELIVERED_STATUS_CODE = 7


async def fetch_shiprocket_token(
    email: str,
    password: str,
    base_url: Optional[str] = None,
    *,
    timeout: float = 15.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Login call. Raises CredentialError when no token comes back."""
    if not email or not password:
        raise CredentialError(CARRIER, "SHIPROCKET_EMAIL / SHIPROCKET_PASSWORD not set")
    base = (base_url or settings.SHIPROCKET_BASE_URL).rstrip("/")
    try:
        resp = await post_no_retry(
            f"{base}/auth/login",
            json={"email": email, "password": password},
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )
    except httpx.HTTPError as e:
        raise CredentialError(CARRIER, "login API unreachable", details=str(e)) from e
    data = json_or_none(resp)
    if resp.status_code >= 400 or not isinstance(data, dict) or not data.get("token"):
        raise CredentialError(
            CARRIER,
            "token not returned by login API",
            details=data if data is not None else resp.text[:500],
        )
    return data["token"]


def _tracking_block(awb: str, data: Any) -> Optional[dict]:
    if not isinstance(data, dict):
        return None
    if "tracking_data" not in data and isinstance(data.get(awb), dict):
        data = data[awb]
    block = data.get("tracking_data")
    return block if isinstance(block, dict) else None


def _parse_activities(block: dict) -> list[ScanEvent]:
    scans = []
    for item in block.get("shipment_track_activities") or []:
        if not isinstance(item, dict):
            continue
        scans.append(
            ScanEvent(
                date=str(item.get("date") or "").strip(),
                location=(str(item.get("location") or "").strip() or None),
                description=str(item.get("activity") or item.get("sr-status-label") or "").strip(),
            )
        )
    return scans


def parse_tracking_response(awb: str, data: Any) -> Optional[TrackingSnapshot]:
    """Map a tracking response to a TrackingSnapshot; None when the AWB is unknown or the shape is off."""
    block = _tracking_block(awb, data)
    if not block or block.get("error") or not block.get("track_status"):
        return None
    tracks = block.get("shipment_track") or []
    track = tracks[0] if tracks and isinstance(tracks[0], dict) else {}
    activities = [a for a in (block.get("shipment_track_activities") or []) if isinstance(a, dict)]
    latest = activities[0] if activities else {}

    status = str(track.get("current_status") or latest.get("sr-status-label") or "").strip()
    if not status:
        return None
    delivered = status.upper() == "DELIVERED" or block.get("shipment_status") == DELIVERED_STATUS_CODE

    ndr_reason = None
    latest_label = str(latest.get("sr-status-label") or "").upper()
    if "UNDELIVERED" in latest_label or "NDR" in latest_label:
        ndr_reason = str(latest.get("activity") or "").strip() or latest_label

    return TrackingSnapshot(
        source=CourierSource.SHIPROCKET,
        awb=str(track.get("awb_code") or awb),
        status=status,
        delivered=delivered,
        ndr_reason=ndr_reason,
        actual_courier=(str(track.get("courier_name") or "").strip() or None),
        scans=_parse_activities(block),
    )


def fastest_etd(data: Any) -> Optional[date]:
    """Earliest etd across available courier companies in a serviceability response."""
    if not isinstance(data, dict):
        return None
    payload = data.get("data") or {}
    companies = payload.get("available_courier_companies") if isinstance(payload, dict) else None
    dates = []
    for company in companies or []:
        if not isinstance(company, dict):
            continue
        parsed = parse_carrier_date(company.get("etd"))
        if parsed:
            dates.append(parsed)
    return min(dates) if dates else None


class ShiprocketClient:
    """Tracking + serviceability adapter. Token comes from the injected CredentialCache."""

    source = CourierSource.SHIPROCKET

    def __init__(
        self,
        credentials: CredentialCache,
        *,
        base_url: Optional[str] = None,
        pickup_pincode: Optional[str] = None,
        parcel_weight_kg: Optional[float] = None,
        tracking_timeout: Optional[float] = None,
        edd_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.base_url = (base_url or settings.SHIPROCKET_BASE_URL).rstrip("/")
        self.pickup_pincode = pickup_pincode or settings.SHIPROCKET_PICKUP_PINCODE
        self.parcel_weight_kg = parcel_weight_kg or settings.SHIPROCKET_PARCEL_WEIGHT_KG
        self.tracking_timeout = tracking_timeout or settings.TRACKING_TIMEOUT_SEC
        self.edd_timeout = edd_timeout or settings.EDD_TIMEOUT_SEC
        self.transport = transport

    async def _headers(self) -> dict:
        token = await self.credentials.get_token(CARRIER)
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    async def _get(self, path: str, *, params: Optional[dict] = None, timeout: float) -> Optional[Any]:
        headers = await self._headers()
        try:
            resp = await get_with_retry(
                f"{self.base_url}{path}",
                params=params,
                headers=headers,
                timeout=timeout,
                transport=self.transport,
            )
        except Exception as e:
            logger.warning("Shiprocket GET %s error: %s", path, e)
            return None
        if resp.status_code == 401:
            self.credentials.invalidate(CARRIER)
            logger.warning("Shiprocket GET %s: token rejected", path)
            return None
        if resp.status_code >= 400:
            logger.warning("Shiprocket GET %s HTTP %s", path, resp.status_code)
            return None
        data = json_or_none(resp)
        if data is None:
            logger.warning("Shiprocket GET %s: non-JSON response", path)
        return data

    async def track(self, awb: str) -> Optional[TrackingSnapshot]:
        data = await self._get(f"/courier/track/awb/{awb}", timeout=self.tracking_timeout)
        if data is None:
            return None
        try:
            return parse_tracking_response(awb, data)
        except Exception as e:
            logger.warning("Shiprocket tracking awb=%s: unexpected payload: %s", awb, e)
            return None

    async def get_expected_delivery(self, pincode: str) -> Optional[date]:
        params = {
            "pickup_postcode": self.pickup_pincode,
            "delivery_postcode": pincode,
            "weight": self.parcel_weight_kg,
            "cod": 0,
        }
        data = await self._get("/courier/serviceability/", params=params, timeout=self.edd_timeout)
        try:
            return fastest_etd(data)
        except Exception as e:
            logger.warning("Shiprocket serviceability pincode=%s: unexpected payload: %s", pincode, e)
            return None

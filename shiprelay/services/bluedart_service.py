"""
Blue Dart API gateway client.
- Auth: GET /token/v1/login with ClientID + clientSecret headers → JWTToken (valid ~24h)
- Tracking: GET /tracking/v1/shipment?handler=tnt&action=custawbquery&awb=AWB&format=json
- Transit time (EDD): POST /transit/v1/GetDomesticTransitTimeForPinCodeandProduct
Every call sends the JWT in the JWTToken header. Lookups never raise: failures return None.
"""
import logging
from datetime import date
from typing import Any, Optional

import httpx

from shiprelay.config import settings
from shiprelay.models import CourierSource, StatusType
from shiprelay.services.credential_cache import CredentialCache, CredentialError
from shiprelay.services.date_utils import legacy_date_now, parse_carrier_date
from shiprelay.services.http_client import get_with_retry, json_or_none, post_no_retry
from shiprelay.services.tracking import ScanEvent, TrackingSnapshot, get_status_type

logger = logging.getLogger(__name__)

CARRIER = CourierSource.BLUEDART.value

# StatusType codes from the tracking API
DELIVERED_CODE = "DL"
UNDELIVERED_CODE = "UD"
NOT_FOUND_CODE = "NF"


async def fetch_bluedart_jwt(
    client_id: str,
    client_secret: str,
    base_url: Optional[str] = None,
    *,
    timeout: float = 15.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """Login call. Raises CredentialError when the gateway does not hand out a JWTToken."""
    if not client_id or not client_secret:
        raise CredentialError(CARRIER, "CLIENT_ID / CLIENT_SECRET not set")
    base = (base_url or settings.BLUEDART_BASE_URL).rstrip("/")
    headers = {"Accept": "application/json", "ClientID": client_id, "clientSecret": client_secret}
    try:
        resp = await get_with_retry(f"{base}/token/v1/login", headers=headers, timeout=timeout, transport=transport)
    except httpx.HTTPError as e:
        raise CredentialError(CARRIER, "authentication API unreachable", details=str(e)) from e
    data = json_or_none(resp)
    if resp.status_code >= 400 or not isinstance(data, dict) or not data.get("JWTToken"):
        raise CredentialError(
            CARRIER,
            "JWTToken not returned by authentication API",
            details=data if data is not None else resp.text[:500],
        )
    return data["JWTToken"]


def _first_shipment(data: Any) -> Optional[dict]:
    if not isinstance(data, dict):
        return None
    shipment_data = data.get("ShipmentData") or data.get("shipmentData")
    if not isinstance(shipment_data, dict):
        return None
    shipments = shipment_data.get("Shipment") or shipment_data.get("shipment")
    if isinstance(shipments, list):
        shipments = shipments[0] if shipments else None
    return shipments if isinstance(shipments, dict) else None


def _parse_scans(shipment: dict) -> list[ScanEvent]:
    block = shipment.get("Scans") or {}
    details = block.get("ScanDetail") if isinstance(block, dict) else block
    if isinstance(details, dict):
        details = [details]
    scans = []
    for item in details or []:
        if not isinstance(item, dict):
            continue
        when = " ".join(p for p in [str(item.get("ScanDate") or "").strip(), str(item.get("ScanTime") or "").strip()] if p)
        scans.append(
            ScanEvent(
                date=when,
                location=(str(item.get("ScannedLocation") or "").strip() or None),
                description=str(item.get("Scan") or "").strip(),
            )
        )
    return scans


def parse_tracking_response(awb: str, data: Any) -> Optional[TrackingSnapshot]:
    """Map a tracking response to a TrackingSnapshot; None when the AWB is unknown or the shape is off."""
    shipment = _first_shipment(data)
    if not shipment:
        return None
    status = str(shipment.get("Status") or "").strip()
    code = str(shipment.get("StatusType") or "").strip().upper()
    if not status or code == NOT_FOUND_CODE or "INCORRECT WAYBILL" in status.upper():
        return None
    ndr_reason = shipment.get("NDRReason") or shipment.get("Instructions") or None
    if not ndr_reason and code == UNDELIVERED_CODE:
        ndr_reason = status
    # Some responses omit StatusType; fall back to the status text
    delivered = code == DELIVERED_CODE or (not code and get_status_type(status) == StatusType.DELIVERED)
    return TrackingSnapshot(
        source=CourierSource.BLUEDART,
        awb=str(shipment.get("WaybillNo") or awb),
        status=status,
        delivered=delivered,
        ndr_reason=ndr_reason,
        actual_courier="Blue Dart",
        scans=_parse_scans(shipment),
    )


class BlueDartClient:
    """Tracking + transit-time adapter. Token comes from the injected CredentialCache."""

    source = CourierSource.BLUEDART

    def __init__(
        self,
        credentials: CredentialCache,
        *,
        base_url: Optional[str] = None,
        login_id: Optional[str] = None,
        licence_key: Optional[str] = None,
        tracking_licence_key: Optional[str] = None,
        origin_pincode: Optional[str] = None,
        tracking_timeout: Optional[float] = None,
        edd_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.base_url = (base_url or settings.BLUEDART_BASE_URL).rstrip("/")
        self.login_id = login_id if login_id is not None else settings.BLUEDART_LOGIN_ID
        self.licence_key = licence_key if licence_key is not None else settings.BLUEDART_LICENCE_KEY
        self.tracking_licence_key = tracking_licence_key or settings.BLUEDART_TRACKING_LICENCE_KEY or self.licence_key
        self.origin_pincode = origin_pincode or settings.BLUEDART_ORIGIN_PINCODE
        self.tracking_timeout = tracking_timeout or settings.TRACKING_TIMEOUT_SEC
        self.edd_timeout = edd_timeout or settings.EDD_TIMEOUT_SEC
        self.transport = transport

    async def _headers(self) -> dict:
        token = await self.credentials.get_token(CARRIER)
        return {"JWTToken": token, "Content-Type": "application/json", "Accept": "application/json"}

    async def track(self, awb: str) -> Optional[TrackingSnapshot]:
        headers = await self._headers()
        params = {
            "handler": "tnt",
            "action": "custawbquery",
            "loginid": self.login_id,
            "awb": "awb",  # query type: waybill numbers (vs "ref")
            "numbers": awb,
            "format": "json",
            "lickey": self.tracking_licence_key,
            "verno": "1",
            "scan": "1",
        }
        try:
            resp = await get_with_retry(
                f"{self.base_url}/tracking/v1/shipment",
                params=params,
                headers=headers,
                timeout=self.tracking_timeout,
                transport=self.transport,
            )
        except Exception as e:
            logger.warning("Blue Dart tracking error awb=%s: %s", awb, e)
            return None
        if resp.status_code == 401:
            self.credentials.invalidate(CARRIER)
            logger.warning("Blue Dart tracking awb=%s: JWT rejected", awb)
            return None
        if resp.status_code >= 400:
            logger.warning("Blue Dart tracking HTTP error awb=%s status=%s", awb, resp.status_code)
            return None
        data = json_or_none(resp)
        if data is None:
            logger.warning("Blue Dart tracking awb=%s: non-JSON response", awb)
            return None
        try:
            return parse_tracking_response(awb, data)
        except Exception as e:
            logger.warning("Blue Dart tracking awb=%s: unexpected payload: %s", awb, e)
            return None

    async def get_expected_delivery(self, pincode: str) -> Optional[date]:
        """Expected delivery date from the origin warehouse to pincode, or None."""
        headers = await self._headers()
        body = {
            "pPinCodeFrom": self.origin_pincode,
            "pPinCodeTo": pincode,
            "pProductCode": settings.BLUEDART_PRODUCT_CODE,
            "pSubProductCode": settings.BLUEDART_SUB_PRODUCT_CODE,
            "pPudate": legacy_date_now(),
            "pPickupTime": settings.BLUEDART_PICKUP_TIME,
            "profile": {
                "Api_type": "S",
                "LicenceKey": self.licence_key,
                "LoginID": self.login_id,
            },
        }
        try:
            resp = await post_no_retry(
                f"{self.base_url}/transit/v1/GetDomesticTransitTimeForPinCodeandProduct",
                json=body,
                headers=headers,
                timeout=self.edd_timeout,
                transport=self.transport,
            )
        except Exception as e:
            logger.warning("Blue Dart EDD error pincode=%s: %s", pincode, e)
            return None
        if resp.status_code == 401:
            self.credentials.invalidate(CARRIER)
        data = json_or_none(resp)
        if resp.status_code >= 400 or not isinstance(data, dict):
            logger.warning("Blue Dart EDD pincode=%s status=%s body=%s", pincode, resp.status_code, resp.text[:300])
            return None
        result = data.get("GetDomesticTransitTimeForPinCodeandProductResult") or {}
        if not isinstance(result, dict) or result.get("IsError"):
            logger.info("Blue Dart EDD pincode=%s not serviceable: %s", pincode, result)
            return None
        try:
            return parse_carrier_date(result.get("ExpectedDateDelivery"))
        except Exception as e:
            logger.warning("Blue Dart EDD pincode=%s: unexpected payload: %s", pincode, e)
            return None

"""
Pincode → district lookup (India Post directory API).
GET {GEO_LOOKUP_URL}/{pincode} → [{"Status": "Success", "PostOffice": [{"District": "Mumbai", ...}]}]
Optional enrichment: any failure returns None and never blocks the caller.
"""
import logging
from typing import Optional

import httpx

from shiprelay.config import settings
from shiprelay.services.http_client import get_with_retry, json_or_none

logger = logging.getLogger(__name__)


class PincodeDirectory:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.GEO_LOOKUP_URL).rstrip("/")
        self.timeout = timeout or settings.GEO_TIMEOUT_SEC
        self.transport = transport

    async def lookup_city(self, pincode: str) -> Optional[str]:
        try:
            resp = await get_with_retry(
                f"{self.base_url}/{pincode}",
                timeout=self.timeout,
                max_retries=0,
                transport=self.transport,
            )
            data = json_or_none(resp) if resp.status_code < 400 else None
        except Exception as e:
            logger.info("Pincode lookup %s failed: %s", pincode, e)
            return None
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        first = data[0]
        if str(first.get("Status") or "").lower() != "success":
            return None
        offices = first.get("PostOffice") or []
        for office in offices:
            if isinstance(office, dict) and office.get("District"):
                return str(office["District"]).strip()
        return None

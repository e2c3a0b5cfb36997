"""
Estimated delivery date for the storefront widget.

Blue Dart transit time first, Shiprocket serviceability as fallback (first
non-null wins). The customer sees a two-day window starting at the fastest
date, plus a badge: METRO_EXPRESS when the pincode's district is a metro.
"""
import asyncio
import logging
import re
from datetime import date, timedelta
from typing import Optional, Protocol, Sequence

from shiprelay.config import settings
from shiprelay.services.credential_cache import CredentialError
from shiprelay.services.date_utils import format_edd
from shiprelay.services.geo_service import PincodeDirectory

logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"^\d{6}$")

BADGE_METRO_EXPRESS = "METRO_EXPRESS"
BADGE_EXPRESS = "EXPRESS"


class EddProvider(Protocol):
    async def get_expected_delivery(self, pincode: str) -> Optional[date]:
        ...


def is_valid_pincode(pincode) -> bool:
    return isinstance(pincode, str) and bool(PINCODE_RE.match(pincode))


def format_window(fastest: date) -> str:
    return f"{format_edd(fastest)}–{format_edd(fastest + timedelta(days=1))}"


def badge_for_city(city: Optional[str], metro_cities: Sequence[str]) -> str:
    if city:
        lowered = city.lower()
        if any(metro.lower() in lowered for metro in metro_cities if metro):
            return BADGE_METRO_EXPRESS
    return BADGE_EXPRESS


class EddEstimator:
    def __init__(
        self,
        providers: Sequence[EddProvider],
        geo: Optional[PincodeDirectory] = None,
        *,
        metro_cities: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ):
        self.providers = list(providers)
        self.geo = geo
        self.metro_cities = list(metro_cities if metro_cities is not None else settings.METRO_CITIES)
        self.timeout = timeout or settings.EDD_TIMEOUT_SEC

    async def _lookup_city(self, pincode: str) -> Optional[str]:
        if self.geo is None:
            return None
        try:
            return await asyncio.wait_for(self.geo.lookup_city(pincode), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info("Pincode lookup %s timed out", pincode)
            return None

    async def _fastest_date(self, pincode: str) -> Optional[date]:
        credential_error: Optional[CredentialError] = None
        all_failed_on_credentials = bool(self.providers)
        for provider in self.providers:
            name = type(provider).__name__
            try:
                fastest = await asyncio.wait_for(provider.get_expected_delivery(pincode), timeout=self.timeout)
            except CredentialError as e:
                logger.warning("EDD via %s: credentials unavailable: %s", name, e)
                credential_error = e
                continue
            except asyncio.TimeoutError:
                logger.warning("EDD via %s timed out for pincode=%s", name, pincode)
                fastest = None
            all_failed_on_credentials = False
            if fastest is not None:
                return fastest
        if credential_error is not None and all_failed_on_credentials:
            raise credential_error
        return None

    async def estimate(self, pincode) -> dict:
        """{eddDisplay, city, badge} or {eddDisplay: None}."""
        pincode = pincode.strip() if isinstance(pincode, str) else pincode
        if not is_valid_pincode(pincode):
            return {"eddDisplay": None}

        city, fastest = await asyncio.gather(self._lookup_city(pincode), self._fastest_date(pincode))
        if fastest is None:
            logger.info("EDD: no carrier estimate for pincode=%s", pincode)
            return {"eddDisplay": None}
        return {
            "eddDisplay": format_window(fastest),
            "city": city,
            "badge": badge_for_city(city, self.metro_cities),
        }

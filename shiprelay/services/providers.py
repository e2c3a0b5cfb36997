"""
Process-wide wiring of carrier collaborators.
One CredentialCache per process; adapters get it injected. The getters double
as FastAPI dependencies so tests can swap them via app.dependency_overrides.
"""
import logging
from functools import lru_cache

from shiprelay.config import settings
from shiprelay.services.bluedart_service import BlueDartClient, fetch_bluedart_jwt
from shiprelay.services.bluedart_service import CARRIER as BLUEDART
from shiprelay.services.credential_cache import CredentialCache
from shiprelay.services.edd_service import EddEstimator
from shiprelay.services.geo_service import PincodeDirectory
from shiprelay.services.shiprocket_service import ShiprocketClient, fetch_shiprocket_token
from shiprelay.services.shiprocket_service import CARRIER as SHIPROCKET
from shiprelay.services.tracking import CarrierTracker

logger = logging.getLogger(__name__)


def build_credential_cache() -> CredentialCache:
    cache = CredentialCache()

    async def _bluedart_token():
        return await fetch_bluedart_jwt(settings.BLUEDART_CLIENT_ID, settings.BLUEDART_CLIENT_SECRET)

    async def _shiprocket_token():
        return await fetch_shiprocket_token(settings.SHIPROCKET_EMAIL, settings.SHIPROCKET_PASSWORD)

    cache.register(BLUEDART, _bluedart_token, settings.BLUEDART_TOKEN_TTL_SEC)
    cache.register(SHIPROCKET, _shiprocket_token, settings.SHIPROCKET_TOKEN_TTL_SEC)
    if not settings.bluedart_configured:
        logger.warning("Blue Dart credentials not configured; Blue Dart lookups will fail over to Shiprocket")
    if not settings.shiprocket_configured:
        logger.warning("Shiprocket credentials not configured")
    return cache


@lru_cache(maxsize=1)
def get_credential_cache() -> CredentialCache:
    return build_credential_cache()


@lru_cache(maxsize=1)
def get_tracker() -> CarrierTracker:
    """Blue Dart first, Shiprocket as fallback."""
    cache = get_credential_cache()
    return CarrierTracker([BlueDartClient(cache), ShiprocketClient(cache)])


@lru_cache(maxsize=1)
def get_edd_estimator() -> EddEstimator:
    cache = get_credential_cache()
    return EddEstimator([BlueDartClient(cache), ShiprocketClient(cache)], geo=PincodeDirectory())

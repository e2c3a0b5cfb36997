"""
Delivery estimate for the storefront widget. Public, no auth.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from shiprelay.http.requests.schemas import EddRequest
from shiprelay.services.credential_cache import CredentialError
from shiprelay.services.edd_service import EddEstimator
from shiprelay.services.providers import get_edd_estimator

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/edd")
async def estimate_delivery(
    request: EddRequest,
    estimator: EddEstimator = Depends(get_edd_estimator),
):
    """{eddDisplay, city, badge}; {eddDisplay: null} for a malformed pincode or no carrier estimate."""
    try:
        return await estimator.estimate(request.pincode)
    except CredentialError as e:
        logger.error("EDD pincode=%s: %s", request.pincode, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.to_detail())

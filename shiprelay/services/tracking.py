"""
Canonical tracking snapshot shared by all carrier adapters, status-type
classification, and the Blue Dart → Shiprocket fallback chain.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from shiprelay.models import CourierSource, StatusType
from shiprelay.services.credential_cache import CredentialError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanEvent:
    date: str
    location: Optional[str]
    description: str

    def to_dict(self) -> dict:
        return {"date": self.date, "location": self.location, "description": self.description}


@dataclass
class TrackingSnapshot:
    source: CourierSource
    awb: str
    status: str
    delivered: bool
    ndr_reason: Optional[str] = None
    actual_courier: Optional[str] = None
    scans: list[ScanEvent] = field(default_factory=list)

    @property
    def status_type(self) -> StatusType:
        return get_status_type(self.status)

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "awb": self.awb,
            "status": self.status,
            "statusType": self.status_type.value,
            "delivered": self.delivered,
            "ndrReason": self.ndr_reason,
            "actualCourier": self.actual_courier,
            "scans": [s.to_dict() for s in self.scans],
        }


def get_status_type(raw_status: Optional[str]) -> StatusType:
    """
    Map carrier free-text status to DL / RT / OF / UNKNOWN.
    Case-insensitive substring rules, first match wins.
    """
    status = (raw_status or "").upper()
    if "DELIVERED" in status:
        return StatusType.DELIVERED
    if "RTO" in status or "RETURN" in status:
        return StatusType.RETURN_TO_ORIGIN
    if "OUT FOR" in status:
        return StatusType.OUT_FOR_DELIVERY
    return StatusType.UNKNOWN


def infer_courier_source(carrier_name: Optional[str]) -> CourierSource:
    """Shopify tracking_company → courier. Anything not mentioning "blue" ships via Shiprocket."""
    if carrier_name and "blue" in carrier_name.lower():
        return CourierSource.BLUEDART
    return CourierSource.SHIPROCKET


class CarrierAdapter(Protocol):
    source: CourierSource

    async def track(self, awb: str) -> Optional[TrackingSnapshot]:
        ...


class CarrierTracker:
    """
    Tries adapters in order and returns the first non-null snapshot.
    Credential outages on one carrier fall through to the next; if every
    carrier failed on credentials the last CredentialError is raised.
    """

    def __init__(self, adapters: Sequence[CarrierAdapter]):
        self.adapters = list(adapters)

    async def track(self, awb: str) -> Optional[TrackingSnapshot]:
        awb = (awb or "").strip()
        if not awb:
            return None
        credential_error: Optional[CredentialError] = None
        all_failed_on_credentials = bool(self.adapters)
        for adapter in self.adapters:
            try:
                snapshot = await adapter.track(awb)
            except CredentialError as e:
                logger.warning("Tracking %s via %s: credentials unavailable: %s", awb, adapter.source.value, e)
                credential_error = e
                continue
            all_failed_on_credentials = False
            if snapshot is not None:
                return snapshot
            logger.debug("Tracking %s: no result from %s", awb, adapter.source.value)
        if credential_error is not None and all_failed_on_credentials:
            raise credential_error
        return None

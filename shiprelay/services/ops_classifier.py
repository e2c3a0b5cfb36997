"""
Ops classifier: when to poll a shipment next, and whether it needs attention.

Pure functions. Every time input is passed in, nothing is read from the clock
or the database here.

Next check, first matching rule wins (case-insensitive substring of the new status):
    DELIVERED              → never (FAR_FUTURE)
    OUT FOR                → +1h
    NDR / FAILED           → next calendar day 08:00 local time
    INVALID / INCORRECT    → +24h
    anything else          → +6h

Ops flag:
    SLA_BREACH        not delivered and older than the courier SLA (Blue Dart 4d, Shiprocket 5d)
    STUCK_IN_TRANSIT  same status as last time and last check more than 48h ago
    ESCALATE          both of the above
"""
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional

from shiprelay.config import settings
from shiprelay.models import CourierSource, OpsFlag, StatusType
from shiprelay.services.date_utils import as_utc
from shiprelay.services.tracking import get_status_type

FAR_FUTURE = datetime(2099, 12, 31, tzinfo=timezone.utc)


def _default_sla_hours() -> dict:
    return {
        CourierSource.BLUEDART: settings.SLA_DAYS_BLUEDART * 24,
        CourierSource.SHIPROCKET: settings.SLA_DAYS_SHIPROCKET * 24,
    }


@dataclass(frozen=True)
class ClassifierPolicy:
    default_recheck_hours: float = 6
    out_for_delivery_recheck_hours: float = 1
    invalid_recheck_hours: float = 24
    ndr_recheck_hour: int = 8
    local_tz: tzinfo = timezone(timedelta(hours=5, minutes=30))
    stuck_after_hours: float = 48
    sla_hours: dict = field(
        default_factory=lambda: {CourierSource.BLUEDART: 96.0, CourierSource.SHIPROCKET: 120.0}
    )

    @classmethod
    def from_settings(cls) -> "ClassifierPolicy":
        return cls(
            default_recheck_hours=settings.DEFAULT_RECHECK_HOURS,
            out_for_delivery_recheck_hours=settings.OUT_FOR_DELIVERY_RECHECK_HOURS,
            invalid_recheck_hours=settings.INVALID_RECHECK_HOURS,
            ndr_recheck_hour=settings.NDR_RECHECK_HOUR,
            local_tz=timezone(timedelta(minutes=settings.LOCAL_UTC_OFFSET_MINUTES)),
            stuck_after_hours=settings.STUCK_AFTER_HOURS,
            sla_hours=_default_sla_hours(),
        )

    def sla_hours_for(self, courier_source: Any) -> float:
        try:
            source = CourierSource(getattr(courier_source, "value", courier_source))
        except ValueError:
            source = CourierSource.SHIPROCKET
        return self.sla_hours.get(source, self.sla_hours[CourierSource.SHIPROCKET])


def _hours_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def compute_next_check(new_status: Optional[str], now: datetime, policy: Optional[ClassifierPolicy] = None) -> datetime:
    policy = policy or ClassifierPolicy()
    now = as_utc(now)
    status = (new_status or "").upper()
    if "DELIVERED" in status:
        return FAR_FUTURE
    if "OUT FOR" in status:
        return now + timedelta(hours=policy.out_for_delivery_recheck_hours)
    if "NDR" in status or "FAILED" in status:
        local_day = now.astimezone(policy.local_tz).date() + timedelta(days=1)
        local_morning = datetime.combine(local_day, time(hour=policy.ndr_recheck_hour), tzinfo=policy.local_tz)
        return local_morning.astimezone(timezone.utc)
    if "INVALID" in status or "INCORRECT" in status:
        return now + timedelta(hours=policy.invalid_recheck_hours)
    return now + timedelta(hours=policy.default_recheck_hours)


def compute_ops_flag(
    shipment: Any,
    new_status: Optional[str],
    now: datetime,
    delivered: bool,
    policy: Optional[ClassifierPolicy] = None,
) -> Optional[OpsFlag]:
    policy = policy or ClassifierPolicy()
    now = as_utc(now)

    created_at = as_utc(shipment.created_at)
    sla_breach = False
    if created_at is not None and not delivered:
        sla_breach = _hours_between(now, created_at) > policy.sla_hours_for(shipment.courier_source)

    last_checked_at = as_utc(shipment.last_checked_at)
    stuck = (
        shipment.last_known_status is not None
        and shipment.last_known_status == new_status
        and last_checked_at is not None
        and _hours_between(now, last_checked_at) > policy.stuck_after_hours
    )

    if sla_breach and stuck:
        return OpsFlag.ESCALATE
    if sla_breach:
        return OpsFlag.SLA_BREACH
    if stuck:
        return OpsFlag.STUCK_IN_TRANSIT
    return None


def classify(
    shipment: Any,
    new_status: Optional[str],
    now: datetime,
    *,
    delivered: Optional[bool] = None,
    policy: Optional[ClassifierPolicy] = None,
) -> tuple[Optional[OpsFlag], datetime]:
    """(ops_flag, next_check_at) for a shipment that just reported new_status."""
    if delivered is None:
        delivered = get_status_type(new_status) == StatusType.DELIVERED
    return (
        compute_ops_flag(shipment, new_status, now, delivered, policy),
        compute_next_check(new_status, now, policy),
    )

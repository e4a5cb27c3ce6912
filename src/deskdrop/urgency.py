"""Time-urgency classification of an order."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from deskdrop._constants import IMMINENT_MINUTES
from deskdrop.models.order import OrderStatus

_MINUTE = timedelta(minutes=1)


class UrgencyKind(StrEnum):
    COMPLETED = "completed"
    ARRIVED = "arrived"
    OVERDUE = "overdue"
    IMMINENT = "imminent"
    SCHEDULED = "scheduled"


@dataclass(frozen=True, slots=True)
class Urgency:
    """Derived urgency tag.

    ``minutes`` is set for ``OVERDUE`` (minutes late, positive),
    ``IMMINENT`` and ``SCHEDULED`` (minutes remaining) and ``None``
    otherwise.
    """

    kind: UrgencyKind
    minutes: int | None = None

    def describe(self) -> str:
        if self.kind is UrgencyKind.COMPLETED:
            return "Completed"
        if self.kind is UrgencyKind.ARRIVED:
            return "Arrived"
        if self.kind is UrgencyKind.OVERDUE:
            return f"{self.minutes} min overdue"
        return f"{self.minutes} min remaining"


def evaluate_urgency(
    status: OrderStatus,
    estimated_delivery_time: datetime,
    now: datetime,
    *,
    imminent_minutes: int = IMMINENT_MINUTES,
) -> Urgency:
    """Classify an order relative to *now*.

    Status wins over time: collected orders are ``COMPLETED`` and arrived
    orders are ``ARRIVED`` whatever the clock says. Otherwise the signed
    delta is floored to whole minutes, so 30 seconds late already counts
    as one minute overdue.
    """
    if status is OrderStatus.COLLECTED:
        return Urgency(UrgencyKind.COMPLETED)
    if status is OrderStatus.ARRIVED:
        return Urgency(UrgencyKind.ARRIVED)

    minutes = (estimated_delivery_time - now) // _MINUTE
    if minutes < 0:
        return Urgency(UrgencyKind.OVERDUE, -minutes)
    if minutes <= imminent_minutes:
        return Urgency(UrgencyKind.IMMINENT, minutes)
    return Urgency(UrgencyKind.SCHEDULED, minutes)

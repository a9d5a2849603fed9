# Reservation lifecycle rules. Pure: no store access; the booking guard applies them.
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet

from .errors import StateError


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class NotificationEvent(str, enum.Enum):
    BOOKING_REQUEST = "booking_request"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"


# Forward transitions only. CANCELLED is absorbing; CONFIRMED never returns to PENDING.
ALLOWED_TRANSITIONS: Dict[ReservationStatus, FrozenSet[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CANCELLED}),
    ReservationStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class BookingPolicy:
    """Snapshot of the tenant's booking policy taken when a reservation is created."""
    auto_confirm: bool

    @classmethod
    def from_tenant(cls, tenant) -> "BookingPolicy":
        return cls(auto_confirm=bool(tenant.auto_confirm_bookings))


def initial_status(policy: BookingPolicy) -> ReservationStatus:
    return ReservationStatus.CONFIRMED if policy.auto_confirm else ReservationStatus.PENDING


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: str, target: ReservationStatus) -> ReservationStatus:
    """
    Validate a move from `current` to `target` and return the parsed current status.

    Raises StateError for unknown statuses and forbidden transitions.
    """
    try:
        parsed = ReservationStatus(current)
    except ValueError as exc:
        raise StateError(f"Unknown reservation status: {current}.") from exc
    if not can_transition(parsed, target):
        if target is ReservationStatus.CONFIRMED:
            raise StateError("Reservation is not pending.")
        raise StateError(f"Reservation cannot move from {parsed.value} to {target.value}.")
    return parsed


def notification_for(status: ReservationStatus) -> NotificationEvent:
    """Notification fired when a reservation enters `status`."""
    if status is ReservationStatus.PENDING:
        return NotificationEvent.BOOKING_REQUEST
    if status is ReservationStatus.CONFIRMED:
        return NotificationEvent.BOOKING_CONFIRMED
    return NotificationEvent.BOOKING_CANCELLED

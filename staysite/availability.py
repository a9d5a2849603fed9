# Availability projection: which dates (or rooms) are free inside a bounded window.
# Read-only; runs outside the serializable booking transaction because a slightly
# stale calendar view is acceptable for the storefront.
from __future__ import annotations

import logging
import os
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from . import models
from .dates import add_days, is_valid_date_range, iter_days
from .errors import ValidationError
from .holds import Hold, group_rooms_by_property, hold_from_block, hold_from_reservation, target_rooms
from .lifecycle import ReservationStatus

logger = logging.getLogger("staysite.availability")


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except Exception:
        return default


# Widest window a single projection may cover; AVAILABILITY_MAX_WINDOW_DAYS (default 366)
MAX_WINDOW_DAYS = _to_int(os.getenv("AVAILABILITY_MAX_WINDOW_DAYS"), 366)


def validate_window(start: date, end: date) -> None:
    if not is_valid_date_range(start, end):
        raise ValidationError("Invalid date range.")
    if add_days(start, MAX_WINDOW_DAYS) < end:
        raise ValidationError(f"Date range may span at most {MAX_WINDOW_DAYS} days.")


# ----------------
# Pure projection
# ----------------
def blocked_dates_by_room(
    rooms: Sequence[models.Room],
    holds: Iterable[Hold],
    start: date,
    end: date,
) -> Dict[int, Set[date]]:
    """
    Expand every hold into the per-room set of blocked days within [start, end).

    Property-wide holds fan out to every given room of that property; holds on
    rooms outside `rooms` are ignored.
    """
    blocked: Dict[int, Set[date]] = {room.id: set() for room in rooms}
    rooms_by_property = group_rooms_by_property(rooms)

    for hold in holds:
        first = max(hold.start, start)
        last = min(hold.end, end)
        if first >= last:
            continue
        days = list(iter_days(first, last))
        for room_id in target_rooms(hold.scope, rooms_by_property):
            room_days = blocked.get(room_id)
            if room_days is not None:
                room_days.update(days)
    return blocked


def unavailable_dates(blocked: Dict[int, Set[date]], start: date, end: date) -> List[date]:
    """Days in [start, end) on which every room is blocked. No rooms means every day."""
    if not blocked:
        return list(iter_days(start, end))
    return [day for day in iter_days(start, end) if all(day in days for days in blocked.values())]


def is_room_available(blocked_days: Set[date], start: date, end: date) -> bool:
    return not any(day in blocked_days for day in iter_days(start, end))


# ----------------
# Store-backed queries
# ----------------
def load_active_rooms(db: Session, tenant_id: int, room_ids: Optional[Sequence[int]] = None) -> List[models.Room]:
    q = db.query(models.Room).filter(
        models.Room.tenant_id == tenant_id,
        models.Room.is_active.is_(True),
    )
    if room_ids is not None:
        q = q.filter(models.Room.id.in_(list(room_ids)))
    return q.order_by(models.Room.created_at.asc(), models.Room.id.asc()).all()


def load_holds(db: Session, tenant_id: int, rooms: Sequence[models.Room], start: date, end: date) -> List[Hold]:
    """Blocks and CONFIRMED reservations intersecting [start, end) for the given rooms or their properties."""
    room_ids = [room.id for room in rooms]
    property_ids = sorted({room.property_id for room in rooms})

    blocks = (
        db.query(models.AvailabilityBlock)
        .filter(
            models.AvailabilityBlock.tenant_id == tenant_id,
            models.AvailabilityBlock.start_date < end,
            models.AvailabilityBlock.end_date > start,
            or_(
                models.AvailabilityBlock.room_id.in_(room_ids),
                (models.AvailabilityBlock.room_id.is_(None))
                & (models.AvailabilityBlock.property_id.in_(property_ids)),
            ),
        )
        .order_by(models.AvailabilityBlock.start_date.asc())
        .all()
    )
    reservations = (
        db.query(models.Reservation)
        .filter(
            models.Reservation.tenant_id == tenant_id,
            models.Reservation.status == ReservationStatus.CONFIRMED.value,
            models.Reservation.check_in_date < end,
            models.Reservation.check_out_date > start,
            or_(
                models.Reservation.room_id.in_(room_ids),
                (models.Reservation.room_id.is_(None))
                & (models.Reservation.property_id.in_(property_ids)),
            ),
        )
        .order_by(models.Reservation.check_in_date.asc())
        .all()
    )
    return [hold_from_block(b) for b in blocks] + [hold_from_reservation(r) for r in reservations]


def project_unavailable_dates(
    db: Session,
    tenant_id: int,
    start: date,
    end: date,
    room_ids: Optional[Sequence[int]] = None,
) -> List[date]:
    """
    Dates in [start, end) where every active room in scope is unavailable.

    With room_ids, the scope narrows to those rooms (inactive or foreign ids are
    dropped, which can leave an empty scope and therefore a fully unavailable window).
    """
    validate_window(start, end)
    rooms = load_active_rooms(db, tenant_id, room_ids)
    if not rooms:
        # Fail closed: nothing bookable means nothing available
        return list(iter_days(start, end))

    holds = load_holds(db, tenant_id, rooms, start, end)
    blocked = blocked_dates_by_room(rooms, holds, start, end)
    result = unavailable_dates(blocked, start, end)
    logger.debug(
        "availability.projected",
        extra={"tenant_id": tenant_id, "rooms": len(rooms), "holds": len(holds), "unavailable": len(result)},
    )
    return result


def project_available_rooms(db: Session, tenant_id: int, start: date, end: date) -> List[models.Room]:
    """Active rooms with no blocked day anywhere in [start, end), in display order."""
    validate_window(start, end)
    rooms = load_active_rooms(db, tenant_id)
    if not rooms:
        return []
    blocked = blocked_dates_by_room(rooms, load_holds(db, tenant_id, rooms, start, end), start, end)
    return [room for room in rooms if is_room_available(blocked[room.id], start, end)]

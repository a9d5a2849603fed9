# Reservation conflict guard: the only writer of reservation status and block existence.
# Every check-and-write runs as one serializable unit; a conflict found inside the
# unit aborts it, so no partial writes survive. Nothing here retries automatically.
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from . import models
from .db import serializable_transaction, supports_row_locks
from .dates import is_valid_date_range
from .errors import ConflictError, NotFoundError, StateError, ValidationError, is_serialization_failure
from .lifecycle import BookingPolicy, ReservationStatus, ensure_transition, initial_status
from .locks import room_lock

logger = logging.getLogger("staysite.booking")

UNAVAILABLE_MESSAGE = "These dates are no longer available."
BLOCKED_MESSAGE = "These dates are blocked."
BUSY_MESSAGE = "Another booking for this room is in progress. Please try again."


@dataclass(frozen=True)
class GuestInfo:
    name: str
    email: str
    phone: Optional[str] = None
    count: Optional[int] = None
    message: Optional[str] = None


# ----------------
# Conflict queries (must run inside the serializable unit)
# ----------------
def _blocking_block(
    db: Session,
    tenant_id: int,
    property_id: int,
    room_id: Optional[int],
    start: date,
    end: date,
) -> Optional[models.AvailabilityBlock]:
    """
    First block overlapping [start, end) that applies to room_id.

    room_id=None asks about the whole property, so any block in it counts.
    """
    q = db.query(models.AvailabilityBlock).filter(
        models.AvailabilityBlock.tenant_id == tenant_id,
        models.AvailabilityBlock.property_id == property_id,
        models.AvailabilityBlock.start_date < end,
        models.AvailabilityBlock.end_date > start,
    )
    if room_id is not None:
        q = q.filter(
            or_(models.AvailabilityBlock.room_id == room_id, models.AvailabilityBlock.room_id.is_(None))
        )
    return q.first()


def _blocking_reservation(
    db: Session,
    tenant_id: int,
    property_id: int,
    room_id: Optional[int],
    start: date,
    end: date,
    exclude_id: Optional[int] = None,
) -> Optional[models.Reservation]:
    """First CONFIRMED reservation overlapping [start, end) on room_id (or anywhere in the property for None)."""
    q = db.query(models.Reservation).filter(
        models.Reservation.tenant_id == tenant_id,
        models.Reservation.property_id == property_id,
        models.Reservation.status == ReservationStatus.CONFIRMED.value,
        models.Reservation.check_in_date < end,
        models.Reservation.check_out_date > start,
    )
    if room_id is not None:
        # NULL-room rows are legacy property-wide holds
        q = q.filter(or_(models.Reservation.room_id == room_id, models.Reservation.room_id.is_(None)))
    if exclude_id is not None:
        q = q.filter(models.Reservation.id != exclude_id)
    return q.first()


def _lock_room(db: Session, tenant_id: int, room_id: int, active_only: bool) -> Optional[models.Room]:
    q = db.query(models.Room).filter(models.Room.tenant_id == tenant_id, models.Room.id == room_id)
    if active_only:
        q = q.filter(models.Room.is_active.is_(True))
    if supports_row_locks(db):
        # Serializes concurrent bookers of the same room on Postgres/MySQL; SQLite already holds the write lock
        q = q.with_for_update()
    return q.first()


def _as_conflict(exc: DBAPIError, action: str, **context) -> Optional[ConflictError]:
    """A serialization abort means a concurrent writer won; report it as a conflict."""
    if not is_serialization_failure(exc):
        return None
    logger.info("booking.serialization_conflict", extra={"action": action, **context})
    return ConflictError(UNAVAILABLE_MESSAGE)


# ----------------
# Operations
# ----------------
def request_booking(
    db: Session,
    *,
    tenant_id: int,
    room_id: int,
    check_in: date,
    check_out: date,
    guest: GuestInfo,
    policy: Optional[BookingPolicy] = None,
) -> models.Reservation:
    """
    Create a reservation for one room if no block or CONFIRMED reservation overlaps.

    The tenant row is re-read inside the transaction; unless an explicit policy
    snapshot is supplied, its auto_confirm_bookings flag at that instant decides
    between CONFIRMED and PENDING. PENDING reservations never block each other.

    Raises ValidationError, NotFoundError, ConflictError.
    """
    if not is_valid_date_range(check_in, check_out):
        raise ValidationError("Invalid date range.")
    if not guest.name or not guest.email:
        raise ValidationError("Guest name and email are required.")

    with room_lock(tenant_id, room_id) as locked:
        if not locked:
            raise ConflictError(BUSY_MESSAGE)
        try:
            with serializable_transaction(db):
                tenant = db.get(models.Tenant, tenant_id)
                if tenant is None:
                    raise NotFoundError("Tenant not found.")
                room = _lock_room(db, tenant_id, room_id, active_only=True)
                if room is None:
                    raise NotFoundError("Room not found.")

                if _blocking_block(db, tenant_id, room.property_id, room.id, check_in, check_out):
                    raise ConflictError(UNAVAILABLE_MESSAGE)
                if _blocking_reservation(db, tenant_id, room.property_id, room.id, check_in, check_out):
                    raise ConflictError(UNAVAILABLE_MESSAGE)

                snapshot = policy or BookingPolicy.from_tenant(tenant)
                reservation = models.Reservation(
                    tenant_id=tenant_id,
                    property_id=room.property_id,
                    room_id=room.id,
                    check_in_date=check_in,
                    check_out_date=check_out,
                    status=initial_status(snapshot).value,
                    source="DIRECT",
                    guest_name=guest.name,
                    guest_email=guest.email,
                    guest_phone=guest.phone,
                    guest_count=guest.count,
                    message=guest.message,
                    version=1,
                )
                db.add(reservation)
                db.flush()
        except DBAPIError as exc:
            conflict = _as_conflict(exc, "request", tenant_id=tenant_id, room_id=room_id)
            if conflict is None:
                raise
            raise conflict from exc

    db.refresh(reservation)
    logger.info(
        "booking.requested",
        extra={
            "tenant_id": tenant_id,
            "room_id": room_id,
            "reservation_id": reservation.id,
            "status": reservation.status,
        },
    )
    return reservation


def confirm_reservation(db: Session, *, tenant_id: int, reservation_id: int) -> models.Reservation:
    """
    Flip a PENDING reservation to CONFIRMED after re-validating its dates.

    Availability may have changed since the request was made, so the same
    block/reservation checks run again inside the transaction.

    Raises NotFoundError, StateError, ConflictError.
    """
    # The lock key needs the room; a pre-transaction read is fine because the unit re-reads it
    existing = (
        db.query(models.Reservation)
        .filter(models.Reservation.tenant_id == tenant_id, models.Reservation.id == reservation_id)
        .first()
    )
    if existing is None:
        raise NotFoundError("Reservation not found.")
    lock_room_id = existing.room_id

    with room_lock(tenant_id, lock_room_id) as locked:
        if not locked:
            raise ConflictError(BUSY_MESSAGE)
        try:
            with serializable_transaction(db):
                reservation = (
                    db.query(models.Reservation)
                    .filter(models.Reservation.tenant_id == tenant_id, models.Reservation.id == reservation_id)
                    .first()
                )
                if reservation is None:
                    raise NotFoundError("Reservation not found.")
                if reservation.room_id is None:
                    raise StateError("Reservation missing room assignment.")
                ensure_transition(reservation.status, ReservationStatus.CONFIRMED)

                if supports_row_locks(db):
                    _lock_room(db, tenant_id, reservation.room_id, active_only=False)

                start, end = reservation.check_in_date, reservation.check_out_date
                if _blocking_block(db, tenant_id, reservation.property_id, reservation.room_id, start, end):
                    raise ConflictError(BLOCKED_MESSAGE)
                if _blocking_reservation(
                    db,
                    tenant_id,
                    reservation.property_id,
                    reservation.room_id,
                    start,
                    end,
                    exclude_id=reservation.id,
                ):
                    raise ConflictError(UNAVAILABLE_MESSAGE)

                reservation.status = ReservationStatus.CONFIRMED.value
                reservation.version = (reservation.version or 1) + 1
                db.add(reservation)
        except DBAPIError as exc:
            conflict = _as_conflict(exc, "confirm", tenant_id=tenant_id, reservation_id=reservation_id)
            if conflict is None:
                raise
            raise conflict from exc

    db.refresh(reservation)
    logger.info("booking.confirmed", extra={"tenant_id": tenant_id, "reservation_id": reservation.id})
    return reservation


def cancel_reservation(db: Session, *, tenant_id: int, reservation_id: int) -> Tuple[models.Reservation, bool]:
    """
    Cancel a reservation. Always permitted; cancelling a CANCELLED reservation is a no-op.

    Returns (reservation, changed). Cancelling frees dates and never creates an
    overlap, so no conflict check is needed.
    """
    reservation = (
        db.query(models.Reservation)
        .filter(models.Reservation.tenant_id == tenant_id, models.Reservation.id == reservation_id)
        .first()
    )
    if reservation is None:
        raise NotFoundError("Reservation not found.")
    if reservation.status == ReservationStatus.CANCELLED.value:
        return reservation, False

    ensure_transition(reservation.status, ReservationStatus.CANCELLED)
    reservation.status = ReservationStatus.CANCELLED.value
    reservation.version = (reservation.version or 1) + 1
    try:
        db.add(reservation)
        db.commit()
        db.refresh(reservation)
    except Exception:
        db.rollback()
        raise

    logger.info("booking.cancelled", extra={"tenant_id": tenant_id, "reservation_id": reservation.id})
    return reservation, True


def create_block(
    db: Session,
    *,
    tenant_id: int,
    room_id: Optional[int],
    start: date,
    end: date,
    reason: Optional[str] = None,
) -> models.AvailabilityBlock:
    """
    Block [start, end) on one room, or on the whole property when room_id is None.

    A block may not overlap a CONFIRMED reservation or another block on any room
    it covers; such a request raises ConflictError.
    """
    if not is_valid_date_range(start, end):
        raise ValidationError("Invalid date range.")

    with room_lock(tenant_id, room_id) as locked:
        if not locked:
            raise ConflictError(BUSY_MESSAGE)
        try:
            with serializable_transaction(db):
                if room_id is not None:
                    room = _lock_room(db, tenant_id, room_id, active_only=False)
                    if room is None:
                        raise NotFoundError("Room not found.")
                    property_id = room.property_id
                else:
                    prop = (
                        db.query(models.Property)
                        .filter(models.Property.tenant_id == tenant_id)
                        .order_by(models.Property.id.asc())
                        .first()
                    )
                    if prop is None:
                        raise NotFoundError("Property not found.")
                    property_id = prop.id

                if _blocking_block(db, tenant_id, property_id, room_id, start, end):
                    raise ConflictError("These dates overlap an existing block.")
                if _blocking_reservation(db, tenant_id, property_id, room_id, start, end):
                    raise ConflictError("These dates overlap a confirmed reservation.")

                block = models.AvailabilityBlock(
                    tenant_id=tenant_id,
                    property_id=property_id,
                    room_id=room_id,
                    start_date=start,
                    end_date=end,
                    reason=(reason or "").strip() or None,
                )
                db.add(block)
                db.flush()
        except DBAPIError as exc:
            conflict = _as_conflict(exc, "block", tenant_id=tenant_id, room_id=room_id)
            if conflict is None:
                raise
            raise conflict from exc

    db.refresh(block)
    logger.info("availability.block_created", extra={"tenant_id": tenant_id, "block_id": block.id, "room_id": room_id})
    return block


def delete_block(db: Session, *, tenant_id: int, block_id: int) -> None:
    deleted = (
        db.query(models.AvailabilityBlock)
        .filter(models.AvailabilityBlock.tenant_id == tenant_id, models.AvailabilityBlock.id == block_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        db.rollback()
        raise NotFoundError("Block not found.")
    db.commit()
    logger.info("availability.block_deleted", extra={"tenant_id": tenant_id, "block_id": block_id})

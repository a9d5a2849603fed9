# Reservation conflict guard: request/confirm/cancel and block creation against the store.
from __future__ import annotations

import threading
from datetime import date
from typing import List

import pytest

from staysite import booking, models
from staysite.db import SessionLocal
from staysite.errors import ConflictError, NotFoundError, StateError, ValidationError
from staysite.lifecycle import BookingPolicy

from conftest import property_of, rooms_of

GUEST = booking.GuestInfo(name="Ada Guest", email="ada@example.com")


def request(db, tenant, room, check_in, check_out, **kwargs) -> models.Reservation:
    return booking.request_booking(
        db,
        tenant_id=tenant.id,
        room_id=room.id,
        check_in=check_in,
        check_out=check_out,
        guest=GUEST,
        **kwargs,
    )


# Confirmed 06-01..06-05: an overlapping request conflicts, a touching one succeeds
def test_overlap_conflicts_and_touching_boundary_succeeds(db, make_tenant):
    tenant = make_tenant(auto_confirm=True)
    (room,) = rooms_of(db, tenant)

    first = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    assert first.status == "CONFIRMED"

    with pytest.raises(ConflictError) as exc:
        request(db, tenant, room, date(2025, 6, 4), date(2025, 6, 8))
    assert exc.value.message == "These dates are no longer available."

    after = request(db, tenant, room, date(2025, 6, 5), date(2025, 6, 8))
    assert after.status == "CONFIRMED"


# Pending requests never block each other
def test_pending_requests_coexist(db, make_tenant):
    tenant = make_tenant(auto_confirm=False)
    (room,) = rooms_of(db, tenant)

    a = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    b = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    assert a.status == b.status == "PENDING"
    assert a.id != b.id


# Confirming the first pending request wins; the second now conflicts
def test_second_confirm_conflicts(db, make_tenant):
    tenant = make_tenant()
    (room,) = rooms_of(db, tenant)
    a = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    b = request(db, tenant, room, date(2025, 6, 3), date(2025, 6, 6))

    confirmed = booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=a.id)
    assert confirmed.status == "CONFIRMED"
    assert confirmed.version == 2

    with pytest.raises(ConflictError):
        booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=b.id)
    db.expire_all()
    assert db.get(models.Reservation, b.id).status == "PENDING"


def test_confirm_non_pending_is_state_error(db, make_tenant):
    tenant = make_tenant()
    (room,) = rooms_of(db, tenant)
    r = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 2))
    booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=r.id)

    with pytest.raises(StateError):
        booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=r.id)

    booking.cancel_reservation(db, tenant_id=tenant.id, reservation_id=r.id)
    with pytest.raises(StateError):
        booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=r.id)


# Cancelling twice is a no-op success
def test_cancel_is_idempotent(db, make_tenant):
    tenant = make_tenant()
    (room,) = rooms_of(db, tenant)
    r = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 2))

    cancelled, changed = booking.cancel_reservation(db, tenant_id=tenant.id, reservation_id=r.id)
    assert changed is True
    assert cancelled.status == "CANCELLED"
    version = cancelled.version

    again, changed = booking.cancel_reservation(db, tenant_id=tenant.id, reservation_id=r.id)
    assert changed is False
    assert again.status == "CANCELLED"
    assert again.version == version


def test_cancelled_reservation_frees_dates(db, make_tenant):
    tenant = make_tenant(auto_confirm=True)
    (room,) = rooms_of(db, tenant)
    r = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    booking.cancel_reservation(db, tenant_id=tenant.id, reservation_id=r.id)

    again = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    assert again.status == "CONFIRMED"


def test_request_rejects_blocked_dates(db, make_tenant):
    tenant = make_tenant()
    (room,) = rooms_of(db, tenant)
    booking.create_block(db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 3), end=date(2025, 6, 4))

    with pytest.raises(ConflictError):
        request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    assert db.query(models.Reservation).count() == 0


def test_property_wide_block_applies_to_every_room(db, make_tenant):
    tenant = make_tenant(rooms=2)
    room_a, room_b = rooms_of(db, tenant)
    block = booking.create_block(db, tenant_id=tenant.id, room_id=None, start=date(2025, 6, 3), end=date(2025, 6, 4))
    assert block.room_id is None
    assert block.property_id == property_of(db, tenant).id

    for room in (room_a, room_b):
        with pytest.raises(ConflictError):
            request(db, tenant, room, date(2025, 6, 2), date(2025, 6, 4))


# A pending request whose dates were blocked afterwards cannot be confirmed
def test_confirm_rechecks_blocks(db, make_tenant):
    tenant = make_tenant()
    (room,) = rooms_of(db, tenant)
    r = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))
    booking.create_block(db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 2), end=date(2025, 6, 3))

    with pytest.raises(ConflictError) as exc:
        booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=r.id)
    assert exc.value.message == "These dates are blocked."


def test_legacy_null_room_reservation_holds_property(db, make_tenant):
    tenant = make_tenant(rooms=2)
    room_a, room_b = rooms_of(db, tenant)
    legacy = models.Reservation(
        tenant_id=tenant.id,
        property_id=room_a.property_id,
        room_id=None,
        check_in_date=date(2025, 6, 1),
        check_out_date=date(2025, 6, 3),
        status="CONFIRMED",
        guest_name="Legacy",
        guest_email="legacy@example.com",
    )
    db.add(legacy)
    db.commit()

    with pytest.raises(ConflictError):
        request(db, tenant, room_b, date(2025, 6, 2), date(2025, 6, 4))

    # Unassigned pending rows cannot be confirmed
    legacy.status = "PENDING"
    db.commit()
    with pytest.raises(StateError):
        booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=legacy.id)


def test_validation_and_not_found(db, make_tenant):
    tenant = make_tenant()
    other = make_tenant()
    (room,) = rooms_of(db, tenant)
    (foreign,) = rooms_of(db, other)

    with pytest.raises(ValidationError):
        request(db, tenant, room, date(2025, 6, 5), date(2025, 6, 5))
    with pytest.raises(NotFoundError):
        request(db, tenant, foreign, date(2025, 6, 1), date(2025, 6, 2))

    room.is_active = False
    db.commit()
    with pytest.raises(NotFoundError):
        request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 2))

    with pytest.raises(NotFoundError):
        booking.confirm_reservation(db, tenant_id=tenant.id, reservation_id=999)
    with pytest.raises(NotFoundError):
        booking.cancel_reservation(db, tenant_id=tenant.id, reservation_id=999)


# Tenant cannot act on another tenant's reservation
def test_reservations_are_tenant_scoped(db, make_tenant):
    tenant = make_tenant()
    other = make_tenant()
    (room,) = rooms_of(db, tenant)
    r = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 2))

    with pytest.raises(NotFoundError):
        booking.confirm_reservation(db, tenant_id=other.id, reservation_id=r.id)


def test_explicit_policy_snapshot_overrides_tenant(db, make_tenant):
    tenant = make_tenant(auto_confirm=False)
    (room,) = rooms_of(db, tenant)
    r = request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 2), policy=BookingPolicy(auto_confirm=True))
    assert r.status == "CONFIRMED"


# ----------------
# Blocks
# ----------------
def test_block_conflicts_with_confirmed_reservation_and_blocks(db, make_tenant):
    tenant = make_tenant(auto_confirm=True)
    (room,) = rooms_of(db, tenant)
    request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5))

    with pytest.raises(ConflictError):
        booking.create_block(db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 4), end=date(2025, 6, 6))
    with pytest.raises(ConflictError):
        booking.create_block(db, tenant_id=tenant.id, room_id=None, start=date(2025, 6, 4), end=date(2025, 6, 6))

    booking.create_block(db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 5), end=date(2025, 6, 7))
    with pytest.raises(ConflictError):
        booking.create_block(db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 6), end=date(2025, 6, 8))
    assert db.query(models.AvailabilityBlock).count() == 1


def test_block_validation_and_delete(db, make_tenant):
    tenant = make_tenant()
    other = make_tenant()
    (room,) = rooms_of(db, tenant)
    (foreign,) = rooms_of(db, other)

    with pytest.raises(ValidationError):
        booking.create_block(db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 2), end=date(2025, 6, 1))
    with pytest.raises(NotFoundError):
        booking.create_block(db, tenant_id=tenant.id, room_id=foreign.id, start=date(2025, 6, 1), end=date(2025, 6, 2))

    block = booking.create_block(
        db, tenant_id=tenant.id, room_id=room.id, start=date(2025, 6, 1), end=date(2025, 6, 2), reason="  Painting "
    )
    assert block.reason == "Painting"
    # The instance expires on commit and cannot be reloaded once the row is gone
    block_id = block.id

    with pytest.raises(NotFoundError):
        booking.delete_block(db, tenant_id=other.id, block_id=block_id)
    booking.delete_block(db, tenant_id=tenant.id, block_id=block_id)
    with pytest.raises(NotFoundError):
        booking.delete_block(db, tenant_id=tenant.id, block_id=block_id)
    assert db.query(models.AvailabilityBlock).count() == 0


# ----------------
# Concurrency
# ----------------
def _race(workers: int, targets) -> List[str]:
    """Run one target per thread from a common start line and collect "ok" or "conflict"."""
    barrier = threading.Barrier(workers)
    outcomes: List[str] = []
    lock = threading.Lock()

    def run(target) -> None:
        session = SessionLocal()
        try:
            barrier.wait()
            target(session)
            result = "ok"
        except ConflictError:
            result = "conflict"
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=run, args=(target,)) for target in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


# Concurrent auto-confirmed requests for the same room and dates: exactly one wins
def test_concurrent_auto_confirm_requests_single_winner(make_tenant, db):
    tenant = make_tenant(auto_confirm=True)
    (room,) = rooms_of(db, tenant)
    tenant_id, room_id = tenant.id, room.id

    workers = 4

    def book(session):
        booking.request_booking(
            session,
            tenant_id=tenant_id,
            room_id=room_id,
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 4),
            guest=GUEST,
        )

    outcomes = _race(workers, [book] * workers)

    assert sorted(outcomes) == ["conflict"] * (workers - 1) + ["ok"]
    confirmed = (
        db.query(models.Reservation)
        .filter(models.Reservation.room_id == room_id, models.Reservation.status == "CONFIRMED")
        .count()
    )
    assert confirmed == 1


# Host confirms several overlapping pending requests at once: exactly one becomes CONFIRMED
def test_concurrent_confirms_single_winner(make_tenant, db):
    tenant = make_tenant(auto_confirm=False)
    (room,) = rooms_of(db, tenant)
    tenant_id, room_id = tenant.id, room.id
    # Every request holds the night of 06-02
    pending = [
        request(db, tenant, room, date(2025, 6, 1), date(2025, 6, 5)).id,
        request(db, tenant, room, date(2025, 6, 2), date(2025, 6, 4)).id,
        request(db, tenant, room, date(2025, 6, 2), date(2025, 6, 7)).id,
        request(db, tenant, room, date(2025, 5, 30), date(2025, 6, 3)).id,
    ]

    def confirm(reservation_id):
        return lambda session: booking.confirm_reservation(
            session, tenant_id=tenant_id, reservation_id=reservation_id
        )

    outcomes = _race(len(pending), [confirm(rid) for rid in pending])

    assert sorted(outcomes) == ["conflict"] * (len(pending) - 1) + ["ok"]
    db.expire_all()
    statuses = sorted(db.get(models.Reservation, rid).status for rid in pending)
    assert statuses == ["CONFIRMED"] + ["PENDING"] * (len(pending) - 1)
    assert (
        db.query(models.Reservation)
        .filter(models.Reservation.room_id == room_id, models.Reservation.status == "CONFIRMED")
        .count()
        == 1
    )


# A property-wide block racing auto-confirmed requests on the same nights: one hold survives
def test_concurrent_property_block_and_requests(make_tenant, db):
    tenant = make_tenant(rooms=1, auto_confirm=True)
    (room,) = rooms_of(db, tenant)
    tenant_id, room_id = tenant.id, room.id

    def block(session):
        booking.create_block(
            session, tenant_id=tenant_id, room_id=None, start=date(2025, 6, 2), end=date(2025, 6, 3)
        )

    def book(session):
        booking.request_booking(
            session,
            tenant_id=tenant_id,
            room_id=room_id,
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 4),
            guest=GUEST,
        )

    outcomes = _race(4, [block, book, book, book])

    assert outcomes.count("ok") == 1
    blocks = db.query(models.AvailabilityBlock).filter(models.AvailabilityBlock.tenant_id == tenant_id).count()
    confirmed = (
        db.query(models.Reservation)
        .filter(models.Reservation.tenant_id == tenant_id, models.Reservation.status == "CONFIRMED")
        .count()
    )
    assert blocks + confirmed == 1

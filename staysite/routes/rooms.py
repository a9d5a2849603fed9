# Room endpoints.
# Guests browse active rooms and search free rooms; staff manage the catalogue.
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import availability, models, schemas
from ..lifecycle import ReservationStatus
from ..tenancy import AdminContext, get_public_tenant, require_admin_tenant
from .availability import parse_window

router = APIRouter()


@router.get("/rooms", response_model=schemas.RoomsOut)
def list_rooms(
    db: Session = Depends(get_db),
    tenant: models.Tenant = Depends(get_public_tenant),
) -> schemas.RoomsOut:
    rooms = availability.load_active_rooms(db, tenant.id)
    return schemas.RoomsOut(rooms=[schemas.RoomRead.model_validate(r) for r in rooms])


@router.get("/rooms/availability", response_model=schemas.RoomsOut)
def list_available_rooms(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    tenant: models.Tenant = Depends(get_public_tenant),
) -> schemas.RoomsOut:
    """Active rooms free for every night of [from, to)."""
    start, end = parse_window(from_, to)
    rooms = availability.project_available_rooms(db, tenant.id, start, end)
    return schemas.RoomsOut(rooms=[schemas.RoomRead.model_validate(r) for r in rooms])


def _get_room(db: Session, tenant_id: int, room_id: int) -> models.Room:
    room = (
        db.query(models.Room)
        .filter(models.Room.tenant_id == tenant_id, models.Room.id == room_id)
        .first()
    )
    if not room:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found.")
    return room


@router.get("/admin/rooms", response_model=List[schemas.RoomRead])
def admin_list_rooms(
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> List[models.Room]:
    # Inactive rooms included so staff can re-enable them
    return (
        db.query(models.Room)
        .filter(models.Room.tenant_id == ctx.tenant.id)
        .order_by(models.Room.created_at.asc(), models.Room.id.asc())
        .all()
    )


@router.post("/admin/rooms", response_model=schemas.RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: schemas.RoomCreate,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> models.Room:
    prop = (
        db.query(models.Property)
        .filter(models.Property.tenant_id == ctx.tenant.id)
        .order_by(models.Property.id.asc())
        .first()
    )
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found.")

    room = models.Room(
        tenant_id=ctx.tenant.id,
        property_id=prop.id,
        name=payload.name,
        slug=payload.slug or None,
        description=payload.description,
        amenities=payload.amenities,
        max_guests=payload.max_guests,
        is_active=payload.is_active,
    )
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@router.patch("/admin/rooms/{room_id}", response_model=schemas.RoomRead)
def update_room(
    room_id: int,
    payload: schemas.RoomUpdate,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> models.Room:
    room = _get_room(db, ctx.tenant.id, room_id)

    changes = payload.model_dump(exclude_unset=True)
    if "amenities" in changes and changes["amenities"] is not None:
        changes["amenities"] = [a.strip() for a in changes["amenities"] if a and a.strip()]
    for field, value in changes.items():
        if value is None and field in {"name", "description", "amenities", "is_active"}:
            continue
        setattr(room, field, value)

    db.commit()
    db.refresh(room)
    return room


@router.delete("/admin/rooms/{room_id}", response_model=schemas.OkOut)
def delete_room(
    room_id: int,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> schemas.OkOut:
    room = _get_room(db, ctx.tenant.id, room_id)

    remaining = db.query(models.Room).filter(models.Room.tenant_id == ctx.tenant.id).count()
    if remaining <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete the last room.")

    booked = (
        db.query(models.Reservation.id)
        .filter(
            models.Reservation.room_id == room.id,
            models.Reservation.status != ReservationStatus.CANCELLED.value,
        )
        .first()
    )
    if booked:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Room has active reservations; deactivate it instead.",
        )

    db.query(models.AvailabilityBlock).filter(models.AvailabilityBlock.room_id == room.id).delete(
        synchronize_session=False
    )
    # Cancelled history keeps its dates but loses the room reference
    db.query(models.Reservation).filter(models.Reservation.room_id == room.id).update(
        {models.Reservation.room_id: None}, synchronize_session=False
    )
    db.delete(room)
    db.commit()
    return schemas.OkOut(ok=True)

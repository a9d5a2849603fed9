# Availability endpoints: the public unavailable-dates calendar and admin blocks.
from typing import List, Optional, Tuple

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import availability, booking, models, schemas
from ..dates import parse_date_only
from ..errors import BookingError
from ..tenancy import AdminContext, get_public_tenant, require_admin_tenant

router = APIRouter()


def parse_window(from_: Optional[str], to: Optional[str]) -> Tuple[date, date]:
    start = parse_date_only(from_)
    end = parse_date_only(to)
    if not start or not end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range.")
    try:
        availability.validate_window(start, end)
    except BookingError as exc:
        raise exc.to_http() from exc
    return start, end


@router.get("/availability", response_model=schemas.AvailabilityOut)
def get_availability(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = Query(None),
    room_id: Optional[int] = Query(None, alias="roomId", ge=1),
    db: Session = Depends(get_db),
    tenant: models.Tenant = Depends(get_public_tenant),
) -> schemas.AvailabilityOut:
    """
    Dates in [from, to) with no free room.

    With roomId, the calendar is computed for that room alone.
    """
    start, end = parse_window(from_, to)
    dates = availability.project_unavailable_dates(
        db,
        tenant.id,
        start,
        end,
        room_ids=[room_id] if room_id is not None else None,
    )
    return schemas.AvailabilityOut(from_=start, to=end, unavailable_dates=dates)


@router.get("/admin/availability/blocks", response_model=List[schemas.BlockRead])
def list_blocks(
    from_: Optional[str] = Query(None, alias="from"),
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> List[models.AvailabilityBlock]:
    q = db.query(models.AvailabilityBlock).filter(models.AvailabilityBlock.tenant_id == ctx.tenant.id)
    if from_ is not None:
        start = parse_date_only(from_)
        if not start:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date.")
        q = q.filter(models.AvailabilityBlock.end_date > start)
    return q.order_by(models.AvailabilityBlock.start_date.asc(), models.AvailabilityBlock.id.asc()).all()


@router.post(
    "/admin/availability/blocks",
    response_model=schemas.BlockOut,
    status_code=status.HTTP_201_CREATED,
)
def create_block(
    payload: schemas.BlockCreate,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> schemas.BlockOut:
    start = parse_date_only(payload.start_date)
    end = parse_date_only(payload.end_date)
    if not start or not end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range.")

    try:
        block = booking.create_block(
            db,
            tenant_id=ctx.tenant.id,
            room_id=payload.room_id,
            start=start,
            end=end,
            reason=payload.reason,
        )
    except BookingError as exc:
        raise exc.to_http() from exc
    return schemas.BlockOut(block=schemas.BlockRead.model_validate(block))


@router.delete("/admin/availability/blocks/{block_id}", response_model=schemas.OkOut)
def delete_block(
    block_id: int,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> schemas.OkOut:
    try:
        booking.delete_block(db, tenant_id=ctx.tenant.id, block_id=block_id)
    except BookingError as exc:
        raise exc.to_http() from exc
    return schemas.OkOut(ok=True)

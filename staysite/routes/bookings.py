# Booking endpoints: public booking requests, admin confirm/cancel/list, and the email audit log.
# The conflict guard decides; this layer validates input, rate-limits, maps errors,
# and queues notifications after the decision is committed.
from __future__ import annotations

from typing import Any, List, Optional

import pydantic
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import booking, models, schemas
from ..dates import is_valid_date_range, parse_date_only
from ..errors import BookingError
from ..lifecycle import ReservationStatus, notification_for
from ..notifications import send_reservation_notifications
from ..rate_limit import check_booking_rate_limit
from ..tenancy import AdminContext, get_public_tenant, require_admin_tenant

router = APIRouter()


async def read_json_body(request: Request) -> Any:
    """Raw JSON body, or None when it is missing or not valid JSON."""
    try:
        return await request.json()
    except ValueError:
        return None


@router.post(
    "/booking-request",
    response_model=schemas.ReservationStatusOut,
    status_code=status.HTTP_201_CREATED,
)
def create_booking_request(
    request: Request,
    background_tasks: BackgroundTasks,
    body: Any = Depends(read_json_body),
    db: Session = Depends(get_db),
) -> models.Reservation:
    # Parse manually so malformed JSON and shape errors are a plain 400 like every other booking rejection
    try:
        payload = schemas.BookingRequestIn.model_validate(body)
    except pydantic.ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request payload.")

    # Bots fill the hidden field; reject without touching availability
    if payload.company and payload.company.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request blocked.")

    check_in = parse_date_only(payload.check_in_date)
    check_out = parse_date_only(payload.check_out_date)
    if not check_in or not check_out or not is_valid_date_range(check_in, check_out):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range.")

    tenant = get_public_tenant(request, db)

    limit = check_booking_rate_limit(tenant.id, request)
    if not limit.allowed:
        headers = {"Retry-After": str(limit.retry_after)} if limit.retry_after else None
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests. Please try again later.",
            headers=headers,
        )

    try:
        reservation = booking.request_booking(
            db,
            tenant_id=tenant.id,
            room_id=payload.room_id,
            check_in=check_in,
            check_out=check_out,
            guest=booking.GuestInfo(
                name=payload.guest_name,
                email=payload.guest_email,
                phone=payload.guest_phone or None,
                count=payload.guest_count,
                message=payload.message or None,
            ),
        )
    except BookingError as exc:
        raise exc.to_http() from exc

    event = notification_for(ReservationStatus(reservation.status))
    background_tasks.add_task(send_reservation_notifications, reservation.id, event)
    return reservation


@router.get("/admin/reservations", response_model=List[schemas.ReservationRead])
def list_reservations(
    status_filter: Optional[ReservationStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> List[models.Reservation]:
    q = db.query(models.Reservation).filter(models.Reservation.tenant_id == ctx.tenant.id)
    if status_filter is not None:
        q = q.filter(models.Reservation.status == status_filter.value)
    return (
        q.order_by(models.Reservation.check_in_date.asc(), models.Reservation.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.post("/admin/reservations/{reservation_id}/confirm", response_model=schemas.ReservationStatusOut)
def confirm_reservation(
    reservation_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> models.Reservation:
    try:
        reservation = booking.confirm_reservation(db, tenant_id=ctx.tenant.id, reservation_id=reservation_id)
    except BookingError as exc:
        raise exc.to_http() from exc

    background_tasks.add_task(
        send_reservation_notifications,
        reservation.id,
        notification_for(ReservationStatus.CONFIRMED),
    )
    return reservation


@router.post("/admin/reservations/{reservation_id}/cancel", response_model=schemas.ReservationStatusOut)
def cancel_reservation(
    reservation_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> models.Reservation:
    try:
        reservation, changed = booking.cancel_reservation(db, tenant_id=ctx.tenant.id, reservation_id=reservation_id)
    except BookingError as exc:
        raise exc.to_http() from exc

    # Idempotent cancel: only an actual transition notifies
    if changed:
        background_tasks.add_task(
            send_reservation_notifications,
            reservation.id,
            notification_for(ReservationStatus.CANCELLED),
        )
    return reservation


@router.get("/admin/email-logs", response_model=schemas.EmailLogsOut)
def list_email_logs(
    reservation_id: Optional[int] = Query(None, alias="reservationId", ge=1),
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> schemas.EmailLogsOut:
    """Latest 50 notification deliveries, newest first."""
    q = db.query(models.EmailLog).filter(models.EmailLog.tenant_id == ctx.tenant.id)
    if reservation_id is not None:
        q = q.filter(models.EmailLog.reservation_id == reservation_id)
    logs = q.order_by(models.EmailLog.created_at.desc(), models.EmailLog.id.desc()).limit(50).all()
    return schemas.EmailLogsOut(logs=[schemas.EmailLogRead.model_validate(log) for log in logs])

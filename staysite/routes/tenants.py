# Tenant onboarding and settings.
# A signed-in user creates a tenant (and its property) and becomes its OWNER.
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..tenancy import AdminContext, require_admin_tenant
from .auth import get_current_user

logger = logging.getLogger("staysite.tenants")

router = APIRouter()


def _tenant_read(tenant: models.Tenant, prop: models.Property) -> schemas.TenantRead:
    return schemas.TenantRead(
        id=tenant.id,
        slug=tenant.slug,
        default_locale=tenant.default_locale,
        auto_confirm_bookings=tenant.auto_confirm_bookings,
        property_id=prop.id,
    )


@router.post("/admin/tenants", response_model=schemas.TenantRead, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: schemas.TenantCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
) -> schemas.TenantRead:
    if db.query(models.Tenant.id).filter(models.Tenant.slug == payload.slug).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slug already taken.")

    tenant = models.Tenant(
        slug=payload.slug,
        default_locale=payload.default_locale,
        auto_confirm_bookings=payload.auto_confirm_bookings,
    )
    db.add(tenant)
    try:
        db.flush()
        prop = models.Property(tenant_id=tenant.id, name=payload.property_name)
        db.add(prop)
        db.add(models.TenantMember(tenant_id=tenant.id, user_id=user.id, role="OWNER"))
        db.commit()
    except IntegrityError as exc:
        # Concurrent signup raced us to the slug
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Slug already taken.") from exc

    db.refresh(tenant)
    db.refresh(prop)
    logger.info("tenant.created", extra={"tenant_id": tenant.id, "user_id": user.id})
    return _tenant_read(tenant, prop)


@router.post("/admin/booking-settings", response_model=schemas.BookingSettings)
def update_booking_settings(
    payload: schemas.BookingSettings,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("ADMIN")),
) -> schemas.BookingSettings:
    """Toggle auto-confirm. Applies to booking requests that start after the commit."""
    ctx.tenant.auto_confirm_bookings = payload.auto_confirm_bookings
    db.commit()
    db.refresh(ctx.tenant)
    return schemas.BookingSettings(auto_confirm_bookings=ctx.tenant.auto_confirm_bookings)


@router.get("/admin/members", response_model=List[schemas.MemberRead])
def list_members(
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("STAFF")),
) -> List[schemas.MemberRead]:
    rows = (
        db.query(models.TenantMember, models.User)
        .join(models.User, models.User.id == models.TenantMember.user_id)
        .filter(models.TenantMember.tenant_id == ctx.tenant.id)
        .order_by(models.TenantMember.id.asc())
        .all()
    )
    return [schemas.MemberRead(user_id=u.id, email=u.email, role=m.role) for m, u in rows]


@router.post("/admin/members", response_model=schemas.MemberRead, status_code=status.HTTP_201_CREATED)
def add_member(
    payload: schemas.MemberCreate,
    db: Session = Depends(get_db),
    ctx: AdminContext = Depends(require_admin_tenant("OWNER")),
) -> schemas.MemberRead:
    user = db.query(models.User).filter(models.User.email == payload.email.lower()).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")

    member = (
        db.query(models.TenantMember)
        .filter(models.TenantMember.tenant_id == ctx.tenant.id, models.TenantMember.user_id == user.id)
        .first()
    )
    if member:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member.")

    member = models.TenantMember(tenant_id=ctx.tenant.id, user_id=user.id, role=payload.role)
    db.add(member)
    db.commit()
    return schemas.MemberRead(user_id=user.id, email=user.email, role=member.role)

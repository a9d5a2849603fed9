# Tenant resolution for public and admin requests.
# Public: X-Tenant-Id header, else the "{slug}.{ROOT_DOMAIN}" Host subdomain.
# Admin: bearer token + X-Tenant-Id, gated by the caller's membership role.
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from . import models
from .db import get_db
from .routes.auth import get_current_user

ROOT_DOMAIN = os.getenv("ROOT_DOMAIN", "localhost").strip().lower()

ROLE_RANK = {"STAFF": 1, "ADMIN": 2, "OWNER": 3}


def tenant_slug_from_host(host: str, root_domain: str = ROOT_DOMAIN) -> Optional[str]:
    """'acme.example.com:8000' -> 'acme' for root 'example.com'; None for the bare root or foreign hosts."""
    hostname = (host or "").split(":", 1)[0].strip().lower().rstrip(".")
    suffix = f".{root_domain}"
    if not hostname.endswith(suffix):
        return None
    slug = hostname[: -len(suffix)]
    if not slug or "." in slug or slug in {"www", "admin"}:
        return None
    return slug


def _parse_tenant_id(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def resolve_public_tenant(request: Request, db: Session) -> Optional[models.Tenant]:
    header = request.headers.get("x-tenant-id")
    if header is not None:
        tenant_id = _parse_tenant_id(header)
        return db.get(models.Tenant, tenant_id) if tenant_id else None

    slug = tenant_slug_from_host(request.headers.get("host", ""))
    if not slug:
        return None
    return db.query(models.Tenant).filter(models.Tenant.slug == slug).first()


def get_public_tenant(request: Request, db: Session = Depends(get_db)) -> models.Tenant:
    tenant = resolve_public_tenant(request, db)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Tenant not resolved.")
    return tenant


@dataclass
class AdminContext:
    user: models.User
    tenant: models.Tenant
    role: str


def has_role(role: str, min_role: str) -> bool:
    return ROLE_RANK.get(role, 0) >= ROLE_RANK[min_role]


def require_admin_tenant(min_role: str = "STAFF") -> Callable[..., AdminContext]:
    """
    Dependency factory: the authenticated caller must be a member of the tenant
    named by X-Tenant-Id with at least `min_role`.
    """
    if min_role not in ROLE_RANK:
        raise ValueError(f"Unknown role: {min_role}")

    def _dependency(
        db: Session = Depends(get_db),
        user: models.User = Depends(get_current_user),
        x_tenant_id: Optional[str] = Header(default=None, alias="X-Tenant-Id"),
    ) -> AdminContext:
        tenant_id = _parse_tenant_id(x_tenant_id)
        if tenant_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active tenant selected.")
        tenant = db.get(models.Tenant, tenant_id)
        if tenant is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found.")
        membership = (
            db.query(models.TenantMember)
            .filter(models.TenantMember.tenant_id == tenant_id, models.TenantMember.user_id == user.id)
            .first()
        )
        if membership is None or not has_role(membership.role, min_role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return AdminContext(user=user, tenant=tenant, role=membership.role)

    return _dependency

from __future__ import annotations

import logging
import os
import time
from typing import List, Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Header, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas

router = APIRouter()
logger = logging.getLogger("staysite.auth")

# Security primitives
JWT_SECRET: str = os.getenv("STAYSITE_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
JWT_TTL_SECONDS: int = 60 * 60 * 12  # 12 hours
# bcrypt_sha256 sidesteps bcrypt's 72-byte password limit
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


# ----------------
# Helpers
# ----------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, user: models.User) -> str:
    now = int(time.time())
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "iat": now,
        "exp": now + JWT_TTL_SECONDS,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


# ----------------
# Dependencies
# ----------------
def bearer_token_from_auth_header(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authorization header missing")
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Authorization header")
    return parts[1]


def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> models.User:
    token = bearer_token_from_auth_header(authorization)
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    user = db.get(models.User, int(user_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


# ----------------
# Sign-in payload
# ----------------
def memberships_for(db: Session, user_id: int) -> List[schemas.MembershipRead]:
    """Tenants the user belongs to, oldest membership first."""
    rows = (
        db.query(models.TenantMember, models.Tenant.slug)
        .join(models.Tenant, models.Tenant.id == models.TenantMember.tenant_id)
        .filter(models.TenantMember.user_id == user_id)
        .order_by(models.TenantMember.created_at.asc(), models.TenantMember.id.asc())
        .all()
    )
    return [schemas.MembershipRead(tenant_id=m.tenant_id, slug=slug, role=m.role) for m, slug in rows]


def token_response(db: Session, user: models.User) -> schemas.TokenResponse:
    memberships = memberships_for(db, user.id)
    return schemas.TokenResponse(
        access_token=create_access_token(user=user),
        user=schemas.UserRead.model_validate(user),
        memberships=memberships,
        active_tenant_id=memberships[0].tenant_id if memberships else None,
    )


# ----------------
# Routes
# ----------------
@router.post("/auth/signup", response_model=schemas.TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: schemas.UserCreate, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    # Email is normalized by the schema validator; enforce uniqueness here
    if db.query(models.User.id).filter(models.User.email == payload.email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = models.User(email=payload.email, password_hash=hash_password(payload.password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("signup user_id=%s", user.id)
    # A new account has no tenant yet; the client sends it to onboarding
    return token_response(db, user)


@router.post("/auth/login", response_model=schemas.TokenResponse)
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    user = db.query(models.User).filter(models.User.email == payload.email).first()
    # Same message for unknown email and wrong password
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password.")
    return token_response(db, user)

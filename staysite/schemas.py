# Pydantic models (request/response DTOs) used by the API layer.
# Public booking contracts use camelCase keys; auth payloads keep snake_case.
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


# Base for JSON contracts with camelCase keys; accepts snake_case names too
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


ReservationStatus = Literal["PENDING", "CONFIRMED", "CANCELLED"]
TenantRole = Literal["STAFF", "ADMIN", "OWNER"]


# Booking requests
# Dates stay strings here so malformed values map to a 400 through parse_date_only
class BookingRequestIn(CamelModel):
    check_in_date: str = Field(..., min_length=1)
    check_out_date: str = Field(..., min_length=1)
    room_id: int = Field(..., ge=1)
    guest_name: str = Field(..., min_length=1, max_length=255)
    guest_email: EmailStr
    guest_phone: Optional[str] = Field(default=None, min_length=1, max_length=50)
    guest_count: Optional[int] = Field(default=None, gt=0)
    message: Optional[str] = Field(default=None, max_length=2000)
    # Honeypot: hidden from humans, filled by bots
    company: Optional[str] = None

    @field_validator("guest_name", "guest_phone", "message", mode="before")
    @classmethod
    def strip_text(cls, v):
        # Trim surrounding whitespace before validation
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("guest_email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


class ReservationStatusOut(CamelModel):
    id: int
    status: ReservationStatus


class ReservationRead(CamelModel):
    id: int
    room_id: Optional[int] = None
    property_id: int
    check_in_date: date
    check_out_date: date
    status: ReservationStatus
    source: str
    guest_name: str
    guest_email: str
    guest_phone: Optional[str] = None
    guest_count: Optional[int] = None
    message: Optional[str] = None
    created_at: datetime


# Availability
class AvailabilityOut(CamelModel):
    from_: date = Field(..., alias="from")
    to: date
    unavailable_dates: List[date]


class RoomRead(CamelModel):
    id: int
    name: str
    slug: Optional[str] = None
    description: str
    amenities: List[str] = []
    max_guests: Optional[int] = None
    is_active: bool


class RoomsOut(CamelModel):
    rooms: List[RoomRead]


class RoomCreate(CamelModel):
    name: str = Field(..., min_length=2, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: str = Field(..., min_length=1)
    amenities: List[str] = []
    max_guests: Optional[int] = Field(default=None, gt=0)
    is_active: bool = True

    @field_validator("name", "slug", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        # Trim surrounding whitespace before validation
        if isinstance(v, str):
            v = v.strip()
        return v

    @field_validator("amenities")
    @classmethod
    def clean_amenities(cls, v: List[str]) -> List[str]:
        return [a.strip() for a in v if a and a.strip()]


class RoomUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    slug: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    amenities: Optional[List[str]] = None
    max_guests: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None

    @field_validator("name", "slug", "description", mode="before")
    @classmethod
    def strip_text(cls, v):
        # Trim surrounding whitespace before validation
        if isinstance(v, str):
            v = v.strip()
        return v


class BlockCreate(CamelModel):
    room_id: Optional[int] = Field(default=None, ge=1)
    start_date: str = Field(..., min_length=1)
    end_date: str = Field(..., min_length=1)
    reason: Optional[str] = Field(default=None, max_length=200)


class BlockRead(CamelModel):
    id: int
    room_id: Optional[int] = None
    start_date: date
    end_date: date
    reason: Optional[str] = None
    created_at: datetime


class BlockOut(CamelModel):
    block: BlockRead


class OkOut(CamelModel):
    ok: bool = True


# Notification audit trail
class EmailLogRead(CamelModel):
    id: int
    reservation_id: Optional[int] = None
    type: str
    to_email: str
    status: str
    error: Optional[str] = None
    created_at: datetime


class EmailLogsOut(CamelModel):
    logs: List[EmailLogRead]


# Tenants and settings
class TenantCreate(CamelModel):
    slug: str = Field(..., min_length=2, max_length=63, pattern=r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
    property_name: str = Field(..., min_length=1, max_length=255)
    default_locale: str = Field(default="en", min_length=2, max_length=10)
    auto_confirm_bookings: bool = False

    @field_validator("slug", mode="before")
    @classmethod
    def normalize_slug(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


class TenantRead(CamelModel):
    id: int
    slug: str
    default_locale: str
    auto_confirm_bookings: bool
    property_id: int


class BookingSettings(CamelModel):
    auto_confirm_bookings: bool


class MemberCreate(CamelModel):
    email: EmailStr
    role: TenantRole = "STAFF"


class MemberRead(CamelModel):
    user_id: int
    email: str
    role: TenantRole


# Authentication and user models
class UserRead(BaseModel):
    id: int
    email: EmailStr

    model_config = ConfigDict(from_attributes=True)


# Request payload for user registration
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    # Normalize email input to lowercase without surrounding whitespace
    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


# Request payload for logging in
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


# One tenant the user belongs to, as listed at sign-in
class MembershipRead(BaseModel):
    tenant_id: int
    slug: str
    role: str


# OAuth2-style token response bundled with the current user profile.
# active_tenant_id is the oldest membership; None means the user still has to onboard.
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
    memberships: List[MembershipRead] = []
    active_tenant_id: Optional[int] = None

# SQLAlchemy ORM models for tenants, rooms, availability blocks, and reservations.
# Keep business logic out of models; the booking guard owns every status transition.
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_mixin

from .db import Base


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Tenant(Base, TimestampMixin):
    """A host account that owns one booking site.

    auto_confirm_bookings is read inside the booking transaction to decide
    whether new reservations start as PENDING or CONFIRMED.
    """
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    slug = Column(String(63), nullable=False, unique=True, index=True)
    default_locale = Column(String(10), nullable=False, default="en")
    auto_confirm_bookings = Column(Boolean, nullable=False, default=False)


class User(Base, TimestampMixin):
    """Admin-side account; access to a tenant goes through TenantMember."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)


class TenantMember(Base, TimestampMixin):
    """Membership of a user in a tenant. Roles rank STAFF < ADMIN < OWNER."""
    __tablename__ = "tenant_members"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(10), nullable=False, default="STAFF")

    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_tenant_members_tenant_user"),
    )


class Property(Base, TimestampMixin):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Room(Base, TimestampMixin):
    """A bookable unit. Inactive rooms are invisible to availability and booking."""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=True)
    description = Column(Text, nullable=False, default="")
    amenities = Column(JSON, nullable=False, default=list)
    max_guests = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_rooms_tenant_active", "tenant_id", "is_active"),
    )


class AvailabilityBlock(Base, TimestampMixin):
    """Admin-created hold over [start_date, end_date).

    room_id NULL means the block applies to every room of the property.
    """
    __tablename__ = "availability_blocks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="CASCADE"), nullable=True, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(String(200), nullable=True)

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_availability_blocks_range"),
        Index("ix_availability_blocks_tenant_start", "tenant_id", "start_date"),
        Index("ix_availability_blocks_tenant_end", "tenant_id", "end_date"),
    )


class Reservation(Base, TimestampMixin):
    """Guest booking over [check_in_date, check_out_date).

    Status transitions:
    PENDING -> CONFIRMED -> CANCELLED
       └────────────────────┘

    Only CONFIRMED rows are exclusionary. room_id NULL is legacy data and is
    treated as a hold on every room of the property.
    'version' is incremented on each status change.
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    source = Column(String(20), nullable=False, default="DIRECT")
    guest_name = Column(String(255), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(50), nullable=True)
    guest_count = Column(Integer, nullable=True)
    message = Column(String(2000), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    # Conflict checks scan by room + status + date bounds
    __table_args__ = (
        CheckConstraint("check_in_date < check_out_date", name="ck_reservations_range"),
        Index("ix_reservations_room_status_check_in", "room_id", "status", "check_in_date"),
        Index("ix_reservations_tenant_status", "tenant_id", "status"),
    )


class EmailLog(Base):
    """Delivery record for reservation notifications (SENT / FAILED / SKIPPED)."""
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True, index=True)
    type = Column(String(40), nullable=False)
    to_email = Column(String(255), nullable=False)
    status = Column(String(10), nullable=False)
    error = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_email_logs_reservation_type", "reservation_id", "type"),
    )

# Reservation notifications: guest and host emails fired after a status transition.
# Runs as a FastAPI background task with its own session. Delivery failures are logged
# and recorded in email_logs; they never reach the request that caused the transition.
from __future__ import annotations

import logging
import os
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from . import models
from .dates import format_date_only
from .db import SessionLocal
from .lifecycle import NotificationEvent
from .redis_client import truthy

logger = logging.getLogger("staysite.notifications")

SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "").strip()
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL", "").strip() or SMTP_USERNAME
SMTP_USE_TLS = truthy(os.getenv("SMTP_USE_TLS", "true"))

HOST_ROLES = ("OWNER", "ADMIN")

_SUBJECTS = {
    NotificationEvent.BOOKING_REQUEST: ("We received your booking request", "New booking request"),
    NotificationEvent.BOOKING_CONFIRMED: ("Your booking is confirmed", "Booking confirmed"),
    NotificationEvent.BOOKING_CANCELLED: ("Your booking was cancelled", "Booking cancelled"),
}


class EmailSender(ABC):
    @abstractmethod
    def send(self, to_email: str, subject: str, body: str) -> None:
        raise NotImplementedError


class SmtpEmailSender(EmailSender):
    def send(self, to_email: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["From"] = SMTP_FROM_EMAIL
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(body)
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as server:
            if SMTP_USE_TLS:
                server.starttls()
            if SMTP_USERNAME and SMTP_PASSWORD:
                server.login(SMTP_USERNAME, SMTP_PASSWORD)
            server.send_message(msg)


class LogEmailSender(EmailSender):
    """Offline delivery for dev/CI: the message is logged instead of sent."""

    def __init__(self) -> None:
        self.outbox: List[Tuple[str, str, str]] = []

    def send(self, to_email: str, subject: str, body: str) -> None:
        self.outbox.append((to_email, subject, body))
        logger.info("email.offline", extra={"to_email": to_email, "subject": subject})


def smtp_enabled() -> bool:
    return bool(SMTP_HOST and SMTP_FROM_EMAIL)


email_sender: EmailSender = SmtpEmailSender() if smtp_enabled() else LogEmailSender()


def _body(reservation: models.Reservation, tenant: models.Tenant, headline: str) -> str:
    lines = [
        headline,
        "",
        f"Reference: {reservation.id}",
        f"Guest: {reservation.guest_name} <{reservation.guest_email}>",
        f"Check-in: {format_date_only(reservation.check_in_date)}",
        f"Check-out: {format_date_only(reservation.check_out_date)}",
        f"Status: {reservation.status}",
    ]
    if reservation.guest_count:
        lines.append(f"Guests: {reservation.guest_count}")
    if reservation.message:
        lines.extend(["", reservation.message])
    lines.extend(["", f"-- {tenant.slug}"])
    return "\n".join(lines)


def host_recipients(db: Session, tenant_id: int) -> List[str]:
    rows = (
        db.query(models.User.email)
        .join(models.TenantMember, models.TenantMember.user_id == models.User.id)
        .filter(models.TenantMember.tenant_id == tenant_id, models.TenantMember.role.in_(HOST_ROLES))
        .order_by(models.User.id.asc())
        .all()
    )
    return [email for (email,) in rows]


def _deliver(
    db: Session,
    reservation: models.Reservation,
    event: NotificationEvent,
    audience: str,
    to_email: str,
    subject: str,
    body: str,
) -> str:
    log_type = f"{event.value}_{audience}"
    already_sent = (
        db.query(models.EmailLog.id)
        .filter(
            models.EmailLog.reservation_id == reservation.id,
            models.EmailLog.type == log_type,
            models.EmailLog.to_email == to_email,
            models.EmailLog.status == "SENT",
        )
        .first()
    )
    if already_sent:
        return "SKIPPED"

    status_val, error = "SENT", None
    try:
        email_sender.send(to_email, subject, body)
    except Exception as exc:
        status_val, error = "FAILED", str(exc)[:1000]
        logger.warning(
            "email.failed",
            extra={"reservation_id": reservation.id, "type": log_type, "to_email": to_email, "error": error},
        )

    db.add(
        models.EmailLog(
            tenant_id=reservation.tenant_id,
            reservation_id=reservation.id,
            type=log_type,
            to_email=to_email,
            status=status_val,
            error=error,
        )
    )
    db.commit()
    return status_val


def send_reservation_notifications(
    reservation_id: int,
    event: NotificationEvent,
    db: Optional[Session] = None,
) -> List[str]:
    """
    Email the guest and the tenant's hosts about a reservation event.

    Never raises: every failure is logged (and, per recipient, recorded in
    email_logs). Accepts an optional Session; otherwise creates and closes its own.

    Returns the per-recipient delivery statuses.
    """
    created_session = False
    if db is None:
        db = SessionLocal()
        created_session = True

    statuses: List[str] = []
    try:
        reservation = db.get(models.Reservation, reservation_id)
        if reservation is None:
            logger.warning("email.reservation_missing", extra={"reservation_id": reservation_id})
            return statuses
        tenant = db.get(models.Tenant, reservation.tenant_id)
        guest_subject, host_subject = _SUBJECTS[event]

        statuses.append(
            _deliver(db, reservation, event, "guest", reservation.guest_email, guest_subject,
                     _body(reservation, tenant, guest_subject))
        )
        for email in host_recipients(db, reservation.tenant_id):
            statuses.append(
                _deliver(db, reservation, event, "host", email, host_subject,
                         _body(reservation, tenant, host_subject))
            )
        return statuses
    except Exception:
        db.rollback()
        logger.exception("email.notification_error", extra={"reservation_id": reservation_id, "event": event.value})
        return statuses
    finally:
        if created_session:
            db.close()

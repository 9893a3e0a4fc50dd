"""Attendee model for RSVP and check-in tracking.

This module defines the Attendee model, one row per (event, guest). A guest
is either a registered User (``user_id``) or an anonymous guest identified
by contact fields; a database check keeps the two modes exclusive.

Rows move through ``pending -> confirmed -> present`` (or ``absent``). They
are only ever mutated through ``guestlist.attendance.gateway``, which
applies state machine transitions as conditional updates.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint
from sqlmodel import Field, Relationship, SQLModel

from guestlist.core.clock import utcnow

if TYPE_CHECKING:
    from guestlist.models.event import Event
    from guestlist.models.user import User


class AttendeeStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PRESENT = "present"
    ABSENT = "absent"


class CheckInOrigin(str, Enum):
    """How an attendee reached ``present``. Reset to NONE on undo."""
    NONE = "none"
    SCANNER = "scanner"
    MANUAL = "manual"


class Attendee(SQLModel, table=True):
    """One guest's attendance record for one event.

    Attributes:
        id: Unique identifier (UUID).
        event_id: Foreign key to the owning Event (cascade on delete).
        user_id: Foreign key to the RSVP'ing User, for registered users.
        guest_name: Display name for anonymous guests.
        guest_email: Contact email for anonymous guests. Also the key used
            to find a returning guest's existing row within an event.
        guest_whatsapp: WhatsApp number for anonymous guests.
        companions_count: Extra people the guest brings. Set at
            confirmation time only.
        status: One of pending, confirmed, present, absent.
        qr_code: Check-in code, unique across all events. Null means no
            code was ever issued (e.g. an arrival registered by hand).
        check_in_origin: scanner or manual once present, none otherwise.
        confirmed_at: Set on confirmation and never changed afterwards.
        checked_in_at: Set on every transition into present, cleared on
            undo.
        checked_in_by: Free-text actor for the last check-in, if given.
        created_at: When the row was created.
    """
    __table_args__ = (
        CheckConstraint("companions_count >= 0", name="ck_attendee_companions"),
        CheckConstraint(
            "(user_id IS NULL AND guest_name IS NOT NULL) OR "
            "(user_id IS NOT NULL AND guest_name IS NULL "
            "AND guest_email IS NULL AND guest_whatsapp IS NULL)",
            name="ck_attendee_identity",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(foreign_key="event.id", ondelete="CASCADE", index=True)
    user_id: UUID | None = Field(
        default=None, foreign_key="user.id", ondelete="CASCADE", index=True
    )
    guest_name: str | None = None
    guest_email: str | None = Field(default=None, index=True)
    guest_whatsapp: str | None = None
    companions_count: int = Field(default=0)
    status: AttendeeStatus = Field(default=AttendeeStatus.PENDING, index=True)
    qr_code: str | None = Field(default=None, index=True, unique=True)
    check_in_origin: CheckInOrigin = Field(default=CheckInOrigin.NONE)
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None
    checked_in_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    event: Optional["Event"] = Relationship(back_populates="attendees")
    user: Optional["User"] = Relationship(back_populates="attendances")

    @property
    def display_name(self) -> str:
        if self.user_id is not None and self.user is not None:
            return self.user.full_name or self.user.username
        return self.guest_name or ""

    @property
    def contact_email(self) -> str | None:
        if self.user_id is not None and self.user is not None:
            return self.user.email
        return self.guest_email

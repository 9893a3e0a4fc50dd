"""Request and response bodies for the HTTP layer."""
from datetime import date, datetime
from typing import Literal
from uuid import UUID

from sqlmodel import Field, SQLModel

from guestlist.attendance.state_machine import AttendeeSnapshot, is_scanner_protected
from guestlist.models import Attendee, AttendeeStatus, CheckInOrigin


class ConfirmAttendanceRequest(SQLModel):
    """RSVP from a registered user (``user_id``) or a guest (contact fields)."""
    user_id: UUID | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_whatsapp: str | None = None
    companions_count: int = Field(default=0, ge=0)


class ConfirmAttendanceResponse(SQLModel):
    attendee_id: UUID
    qr_code: str | None
    status: AttendeeStatus


class RegisterArrivalRequest(SQLModel):
    """Admin-entered attendee that never went through the RSVP form."""
    user_id: UUID | None = None
    guest_name: str | None = None
    guest_email: str | None = None
    guest_whatsapp: str | None = None
    companions_count: int = Field(default=0, ge=0)
    status: Literal["present", "confirmed"] = "present"


class CheckInRequest(SQLModel):
    qr_code: str = Field(min_length=1)
    checked_in_by: str | None = None


class ManualCheckInRequest(SQLModel):
    attendee_id: UUID
    action: Literal["checkin", "undo_checkin"]


class AttendeeRead(SQLModel):
    id: UUID
    event_id: UUID
    user_id: UUID | None
    display_name: str
    guest_name: str | None
    guest_email: str | None
    guest_whatsapp: str | None
    companions_count: int
    status: AttendeeStatus
    qr_code: str | None
    check_in_origin: CheckInOrigin
    scanner_protected: bool
    confirmed_at: datetime | None
    checked_in_at: datetime | None
    checked_in_by: str | None
    created_at: datetime

    @classmethod
    def of(cls, attendee: Attendee, protect_coded: bool = True) -> "AttendeeRead":
        protected = is_scanner_protected(AttendeeSnapshot.of(attendee), protect_coded)
        return cls(
            id=attendee.id,
            event_id=attendee.event_id,
            user_id=attendee.user_id,
            display_name=attendee.display_name,
            guest_name=attendee.guest_name,
            guest_email=attendee.guest_email,
            guest_whatsapp=attendee.guest_whatsapp,
            companions_count=attendee.companions_count,
            status=attendee.status,
            qr_code=attendee.qr_code,
            check_in_origin=attendee.check_in_origin,
            scanner_protected=protected,
            confirmed_at=attendee.confirmed_at,
            checked_in_at=attendee.checked_in_at,
            checked_in_by=attendee.checked_in_by,
            created_at=attendee.created_at,
        )


class CheckInResponse(AttendeeRead):
    already_checked_in: bool = False


class EventCreate(SQLModel):
    title: str = Field(min_length=1)
    description: str | None = None
    event_date: date | None = None
    max_companions: int = Field(default=2, ge=0)
    owner_id: UUID | None = None


class EventRead(SQLModel):
    id: UUID
    title: str
    description: str | None
    event_date: date | None
    max_companions: int
    owner_id: UUID | None
    created_at: datetime


class NotificationSettingsUpdate(SQLModel):
    admin_email: str | None = None
    attendee_confirmations_enabled: bool | None = None
    attendee_confirmations_threshold: int | None = Field(default=None, ge=1)
    event_reminder_enabled: bool | None = None
    reminder_days_before: str | None = Field(default=None, regex=r"^\s*\d+(\s*,\s*\d+)*\s*$")


class NotificationSettingsRead(SQLModel):
    event_id: UUID
    admin_email: str
    attendee_confirmations_enabled: bool
    attendee_confirmations_threshold: int
    event_reminder_enabled: bool
    reminder_days_before: str
    last_attendee_count: int

"""Guest and organizer notifications triggered by attendance changes.

The actual email/WhatsApp delivery belongs to an external sender. This
module defines the interface the attendance core calls and a default
implementation that only logs. Notifications are fire-and-forget: callers
dispatch them after the transition has committed and a failing sender never
undoes a check-in.

Notifiers receive frozen notices rather than ORM rows because they usually
run after the response is sent, when the request's session is gone.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session

from guestlist.attendance.stats import AttendanceStats
from guestlist.core.clock import utcnow
from guestlist.models import (
    Attendee,
    AttendeeStatus,
    CheckInOrigin,
    Event,
    EventNotificationSettings,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendeeNotice:
    attendee_id: UUID
    event_id: UUID
    event_title: str
    name: str
    email: str | None
    whatsapp: str | None
    qr_code: str | None
    status: AttendeeStatus
    origin: CheckInOrigin

    @classmethod
    def of(cls, attendee: Attendee, event: Event) -> "AttendeeNotice":
        return cls(
            attendee_id=attendee.id,
            event_id=event.id,
            event_title=event.title,
            name=attendee.display_name,
            email=attendee.contact_email,
            whatsapp=attendee.guest_whatsapp,
            qr_code=attendee.qr_code,
            status=attendee.status,
            origin=attendee.check_in_origin,
        )


@dataclass(frozen=True)
class ThresholdNotice:
    event_id: UUID
    event_title: str
    admin_email: str
    confirmed: int
    threshold: int


class Notifier(Protocol):
    """Sender for attendance-related messages."""

    def attendance_confirmed(self, notice: AttendeeNotice) -> None: ...

    def checked_in(self, notice: AttendeeNotice) -> None: ...

    def check_in_undone(self, notice: AttendeeNotice) -> None: ...

    def confirmation_threshold_reached(self, notice: ThresholdNotice) -> None: ...

    def check_in_reminder(self, notice: AttendeeNotice, days_before: int) -> None: ...


class LoggingNotifier:
    """Notifier that records every message in the application log."""

    def attendance_confirmed(self, notice: AttendeeNotice) -> None:
        logger.info(
            f"Confirmation for '{notice.name}' <{notice.email}> to "
            f"'{notice.event_title}', code {notice.qr_code}"
        )

    def checked_in(self, notice: AttendeeNotice) -> None:
        logger.info(
            f"'{notice.name}' arrived at '{notice.event_title}' ({notice.origin.value})"
        )

    def check_in_undone(self, notice: AttendeeNotice) -> None:
        logger.info(f"Check-in undone for '{notice.name}' at '{notice.event_title}'")

    def confirmation_threshold_reached(self, notice: ThresholdNotice) -> None:
        logger.info(
            f"'{notice.event_title}' reached {notice.confirmed} confirmations, "
            f"notifying {notice.admin_email or 'organizer'}"
        )

    def check_in_reminder(self, notice: AttendeeNotice, days_before: int) -> None:
        logger.info(
            f"Reminder to <{notice.email}>: '{notice.event_title}' in "
            f"{days_before} day(s), code {notice.qr_code}"
        )


_default_notifier = LoggingNotifier()


def get_notifier() -> Notifier:
    """Dependency for the notification sender."""
    return _default_notifier


def safe_notify(func: Callable[..., None], *args) -> None:
    """Call a notifier method, logging instead of raising on failure."""
    try:
        func(*args)
    except Exception:
        logger.exception(f"Notification {getattr(func, '__name__', func)} failed")


def check_confirmation_threshold(
    session: Session,
    event: Event,
    stats: AttendanceStats,
    notifier: Notifier,
    dispatch: Callable[..., None] = safe_notify,
) -> bool:
    """Tell the organizer each time confirmations cross a threshold multiple.

    With a threshold of 5, the organizer hears at 5, 10, 15... confirmed
    guests. ``last_attendee_count`` remembers the count at the previous
    notification so a multiple is announced once. ``dispatch`` runs the
    notifier call; the gateway passes its deferred dispatcher.

    The new count is written with a conditional update on the count that
    was read, so of two requests crossing the same multiple only one
    notifies.

    Returns:
        True if a notification was dispatched.
    """
    settings = event.notification_settings
    if settings is None or not settings.attendee_confirmations_enabled:
        return False
    threshold = settings.attendee_confirmations_threshold
    if threshold <= 0:
        return False

    current = stats.confirmed
    previous = settings.last_attendee_count
    if current // threshold <= previous // threshold:
        return False

    notice = ThresholdNotice(
        event_id=event.id,
        event_title=event.title,
        admin_email=settings.admin_email,
        confirmed=current,
        threshold=threshold,
    )
    statement = (
        update(EventNotificationSettings)
        .where(EventNotificationSettings.id == settings.id)
        .where(EventNotificationSettings.last_attendee_count == previous)
        .values(last_attendee_count=current, updated_at=utcnow())
    )
    if session.connection().execute(statement).rowcount != 1:
        session.rollback()
        logger.warning(f"Threshold for event {notice.event_id} already announced by another request")
        return False
    session.commit()
    dispatch(notifier.confirmation_threshold_reached, notice)
    logger.info(f"Threshold notification for event {notice.event_id} at {current} confirmations")
    return True

"""Check-in reminders sent to confirmed guests ahead of an event."""
import logging
from datetime import date

from sqlmodel import Session, select

from guestlist.attendance.notifications import AttendeeNotice, Notifier, safe_notify
from guestlist.models import Attendee, AttendeeStatus, Event, EventNotificationSettings

logger = logging.getLogger(__name__)


def send_check_in_reminders(session: Session, notifier: Notifier, today: date) -> dict:
    """
    Remind confirmed guests of their QR code before upcoming events.

    An event qualifies when its notification settings enable reminders and
    it is exactly one of ``reminder_days_before`` days after ``today``.
    Only confirmed attendees holding a code are reminded; a guest who is
    already present or never got a code has nothing to bring.

    Returns dict with the number of events and reminders processed.
    """
    statement = (
        select(Event, EventNotificationSettings)
        .join(EventNotificationSettings, EventNotificationSettings.event_id == Event.id)
        .where(EventNotificationSettings.event_reminder_enabled == True)  # noqa: E712
        .where(Event.event_date != None)  # noqa: E711
        .where(Event.event_date >= today)
    )

    stats = {"events": 0, "reminders": 0}
    for event, settings in session.exec(statement).all():
        days_before = (event.event_date - today).days
        if days_before not in settings.reminder_offsets():
            continue

        attendees = session.exec(
            select(Attendee)
            .where(Attendee.event_id == event.id)
            .where(Attendee.status == AttendeeStatus.CONFIRMED)
            .where(Attendee.qr_code != None)  # noqa: E711
        ).all()
        stats["events"] += 1
        for attendee in attendees:
            safe_notify(
                notifier.check_in_reminder,
                AttendeeNotice.of(attendee, event),
                days_before,
            )
            stats["reminders"] += 1
        logger.info(
            f"Sent {len(attendees)} check-in reminders for event {event.id} "
            f"({days_before} day(s) ahead)"
        )

    return stats


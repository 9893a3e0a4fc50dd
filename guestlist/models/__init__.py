from guestlist.models.attendee import Attendee, AttendeeStatus, CheckInOrigin
from guestlist.models.event import Event
from guestlist.models.notification_settings import EventNotificationSettings
from guestlist.models.user import User

__all__ = [
    "Attendee",
    "AttendeeStatus",
    "CheckInOrigin",
    "Event",
    "EventNotificationSettings",
    "User",
]

"""Per-event organizer notification settings.

Organizers can ask to be told every N confirmations and can have guests
reminded of their check-in code a few days before the event. One row per
event at most; events without a row behave as if the defaults were stored.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

from guestlist.core.clock import utcnow

if TYPE_CHECKING:
    from guestlist.models.event import Event


class EventNotificationSettings(SQLModel, table=True):
    """Notification configuration for one event.

    Attributes:
        id: Unique identifier (UUID).
        event_id: Foreign key to the Event (unique, cascade on delete).
        admin_email: Where organizer notifications go.
        attendee_confirmations_enabled: Send threshold notifications.
        attendee_confirmations_threshold: Notify every this many
            confirmations (5, 10, 20...).
        event_reminder_enabled: Send check-in reminders to guests.
        reminder_days_before: Comma-separated day offsets, e.g. "1,2".
        last_attendee_count: Confirmed count at the last threshold
            notification.
        created_at: Creation timestamp.
        updated_at: Last modification timestamp.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: UUID = Field(
        foreign_key="event.id", ondelete="CASCADE", unique=True, index=True
    )
    admin_email: str = ""
    attendee_confirmations_enabled: bool = Field(default=True)
    attendee_confirmations_threshold: int = Field(default=5)
    event_reminder_enabled: bool = Field(default=True)
    reminder_days_before: str = Field(default="1,2")
    last_attendee_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationship
    event: Optional["Event"] = Relationship(back_populates="notification_settings")

    def reminder_offsets(self) -> set[int]:
        """Parse ``reminder_days_before`` into day offsets, ignoring junk."""
        offsets = set()
        for part in self.reminder_days_before.split(","):
            part = part.strip()
            if part.isdigit():
                offsets.add(int(part))
        return offsets

"""Event model for gallery events that guests RSVP to.

This module defines the Event model. Only the fields the attendance core
needs are kept here: an owner, a date for reminders and the organizer's
cap on companions per guest. Everything else about an event (cover image,
theme, gallery) is handled elsewhere.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

from guestlist.core.clock import utcnow

if TYPE_CHECKING:
    from guestlist.models.attendee import Attendee
    from guestlist.models.notification_settings import EventNotificationSettings
    from guestlist.models.user import User


class Event(SQLModel, table=True):
    """An event guests can confirm attendance for.

    Attributes:
        id: Unique identifier (UUID).
        title: Event title shown in notifications.
        description: Free-form description.
        event_date: Calendar date of the event, if set. Reminder runs use
            it to decide which events are coming up.
        max_companions: Maximum companions a single guest may declare.
        owner_id: Foreign key to the owning User. Deleting the user
            deletes the event.
        created_at: When the event row was created.
        owner: Reference to the owning User.
        attendees: Attendance records. Deleted with the event.
        notification_settings: Organizer notification configuration.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    title: str
    description: str | None = None
    event_date: date | None = Field(default=None, index=True)
    max_companions: int = Field(default=2, ge=0)
    owner_id: UUID | None = Field(
        default=None, foreign_key="user.id", ondelete="CASCADE", index=True
    )
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    owner: Optional["User"] = Relationship(back_populates="events")
    attendees: list["Attendee"] = Relationship(
        back_populates="event",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    notification_settings: Optional["EventNotificationSettings"] = Relationship(
        back_populates="event",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "uselist": False},
    )

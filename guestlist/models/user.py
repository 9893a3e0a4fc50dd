"""User model for registered accounts.

Users own events and may RSVP to other events as themselves instead of
filling in guest contact fields. Account management itself lives outside
this service; the table exists so ownership and cascades are real.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlmodel import Field, Relationship, SQLModel

from guestlist.core.clock import utcnow

if TYPE_CHECKING:
    from guestlist.models.attendee import Attendee
    from guestlist.models.event import Event


class User(SQLModel, table=True):
    """A registered account.

    Attributes:
        id: Unique identifier (UUID).
        username: Login handle (unique).
        email: Contact address used for attendance notifications.
        full_name: Display name shown on attendee lists.
        is_admin: Whether the user may run manual check-ins.
        created_at: When the account row was created.
        events: Events owned by this user. Deleted with the user.
        attendances: Attendee rows where this user RSVP'd as themselves.
            Deleted with the user.
    """
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: str
    full_name: str = ""
    is_admin: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)

    # Relationships
    events: list["Event"] = Relationship(
        back_populates="owner",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    attendances: list["Attendee"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

"""Organizer notification settings per event."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from guestlist.core.clock import utcnow
from guestlist.core.database import get_session
from guestlist.models import Event, EventNotificationSettings
from guestlist.schemas import NotificationSettingsRead, NotificationSettingsUpdate

router = APIRouter(prefix="/events/{event_id}/notification-settings", tags=["notifications"])


def _load(session: Session, event_id: UUID) -> EventNotificationSettings | None:
    statement = select(EventNotificationSettings).where(
        EventNotificationSettings.event_id == event_id
    )
    return session.exec(statement).first()


@router.get("", response_model=NotificationSettingsRead)
def get_notification_settings(event_id: UUID, session: Session = Depends(get_session)):
    """
    Get notification settings for an event.

    Events that were never configured report the defaults without
    creating a row.
    """
    if not session.get(Event, event_id):
        raise HTTPException(status_code=404, detail="Event not found")

    return _load(session, event_id) or EventNotificationSettings(event_id=event_id)


@router.post("", response_model=NotificationSettingsRead)
def save_notification_settings(
    event_id: UUID,
    payload: NotificationSettingsUpdate,
    session: Session = Depends(get_session),
):
    """
    Create or update notification settings for an event.

    Only fields present in the body are changed.
    """
    if not session.get(Event, event_id):
        raise HTTPException(status_code=404, detail="Event not found")

    current = _load(session, event_id) or EventNotificationSettings(event_id=event_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(current, field, value)
    current.updated_at = utcnow()

    session.add(current)
    session.commit()
    session.refresh(current)
    return current

"""Event routes for creating, reading and deleting events."""
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlmodel import Session

from guestlist.core.database import get_session
from guestlist.models import Event, User
from guestlist.schemas import EventCreate, EventRead

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventRead, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, session: Session = Depends(get_session)):
    """
    Create an event.

    Only the fields attendance needs are accepted. Returns 400 if the
    owner does not exist.
    """
    if payload.owner_id and not session.get(User, payload.owner_id):
        raise HTTPException(status_code=400, detail="Invalid owner_id")

    event = Event(**payload.model_dump())
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@router.get("/{event_id}", response_model=EventRead)
def get_event(event_id: UUID, session: Session = Depends(get_session)):
    """Return a single event."""
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(event_id: UUID, session: Session = Depends(get_session)):
    """
    Delete an event.

    Attendee records and notification settings go with it.
    """
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    session.delete(event)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)

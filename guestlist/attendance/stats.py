"""Attendance statistics for one event.

Stats are always recomputed from the attendee rows. There is no stored
counter to keep in step with check-ins, so a failed or raced write can never
leave the numbers wrong; at worst a reader sees the state from just before
a concurrent commit.
"""
from uuid import UUID

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from guestlist.models import Attendee, AttendeeStatus


class AttendanceStats(SQLModel):
    """Point-in-time counts for an event.

    ``total`` always equals ``pending + confirmed + present + absent``.
    ``companions`` sums ``companions_count`` over every row regardless of
    status.
    """
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    present: int = 0
    absent: int = 0
    companions: int = 0


def compute(session: Session, event_id: UUID) -> AttendanceStats:
    """Count attendees of ``event_id`` by status and sum their companions."""
    statement = (
        select(
            Attendee.status,
            func.count(Attendee.id),
            func.coalesce(func.sum(Attendee.companions_count), 0),
        )
        .where(Attendee.event_id == event_id)
        .group_by(Attendee.status)
    )
    counts = {status: 0 for status in AttendeeStatus}
    companions = 0
    for status, count, companion_sum in session.exec(statement).all():
        counts[AttendeeStatus(status)] = count
        companions += companion_sum

    return AttendanceStats(
        total=sum(counts.values()),
        pending=counts[AttendeeStatus.PENDING],
        confirmed=counts[AttendeeStatus.CONFIRMED],
        present=counts[AttendeeStatus.PRESENT],
        absent=counts[AttendeeStatus.ABSENT],
        companions=companions,
    )

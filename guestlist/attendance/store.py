"""Attendee persistence with conditional updates.

Every status change goes through ``compare_and_set``: a single UPDATE whose
WHERE clause repeats the status the caller read. When two requests race on
the same attendee, the database applies one of them and the other sees zero
affected rows. No in-process locks are taken, so this holds across several
server processes sharing one database.
"""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from guestlist.attendance.errors import CodeCollisionError
from guestlist.models import Attendee, AttendeeStatus

logger = logging.getLogger(__name__)


def _is_qr_collision(exc: IntegrityError) -> bool:
    return "qr_code" in str(exc.orig).lower()


class AttendeeStore:
    """Attendee lookups and writes on one database session."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, attendee_id: UUID) -> Attendee | None:
        return self.session.get(Attendee, attendee_id)

    def get_by_code(self, code: str) -> Attendee | None:
        statement = select(Attendee).where(Attendee.qr_code == code)
        return self.session.exec(statement).first()

    def find_by_identity(
        self,
        event_id: UUID,
        user_id: UUID | None = None,
        guest_email: str | None = None,
    ) -> Attendee | None:
        """Existing row for the same person in the same event, if any."""
        statement = select(Attendee).where(Attendee.event_id == event_id)
        if user_id is not None:
            statement = statement.where(Attendee.user_id == user_id)
        elif guest_email:
            statement = statement.where(Attendee.guest_email == guest_email)
        else:
            return None
        return self.session.exec(statement).first()

    def list_for_event(self, event_id: UUID) -> list[Attendee]:
        statement = (
            select(Attendee)
            .where(Attendee.event_id == event_id)
            .order_by(Attendee.created_at.desc())
        )
        return list(self.session.exec(statement).all())

    def insert(self, attendee: Attendee) -> Attendee:
        """Insert and commit a new row.

        Raises:
            CodeCollisionError: Another row already holds ``attendee.qr_code``.
        """
        self.session.add(attendee)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if attendee.qr_code and _is_qr_collision(exc):
                raise CodeCollisionError(attendee.qr_code) from exc
            raise
        self.session.refresh(attendee)
        return attendee

    def compare_and_set(
        self,
        attendee_id: UUID,
        expected_status: AttendeeStatus,
        changes: dict[str, Any],
        code_unset: bool = False,
    ) -> bool:
        """Write ``changes`` only if the row still has ``expected_status``.

        With ``code_unset`` the row must also still have no QR code, so two
        requests cannot both bind a code to it.

        Commits on success and rolls back otherwise. Returns whether the
        row was updated.

        Raises:
            CodeCollisionError: ``changes`` bind a QR code another row holds.
        """
        statement = (
            update(Attendee)
            .where(Attendee.id == attendee_id)
            .where(Attendee.status == expected_status)
            .values(**changes)
        )
        if code_unset:
            statement = statement.where(Attendee.qr_code == None)  # noqa: E711
        try:
            result = self.session.connection().execute(statement)
        except IntegrityError as exc:
            self.session.rollback()
            if changes.get("qr_code") and _is_qr_collision(exc):
                raise CodeCollisionError(changes["qr_code"]) from exc
            raise

        if result.rowcount != 1:
            self.session.rollback()
            logger.warning(
                f"Conditional update lost for attendee {attendee_id}: "
                f"row changed since it was read as '{expected_status.value}'"
            )
            return False

        self.session.commit()
        return True

    def reload(self, attendee_id: UUID) -> Attendee | None:
        """Fetch the committed row, discarding any stale cached state."""
        attendee = self.session.get(Attendee, attendee_id)
        if attendee is not None:
            self.session.refresh(attendee)
        return attendee

    def rollback(self) -> None:
        self.session.rollback()

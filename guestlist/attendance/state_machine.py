"""Attendance state machine.

Transitions:

    pending   --RSVP-----------> confirmed
    confirmed --SCAN-----------> present   (origin scanner)
    confirmed --MANUAL_CHECKIN-> present   (origin manual)
    present   --UNDO_CHECKIN---> confirmed (manual origin only)
    pending   --MARK_ABSENT----> absent    (admin, unguarded)
    confirmed --MARK_ABSENT----> absent

``absent`` is terminal. A present attendee is scanner-protected when it was
checked in by a scan, or, while ``protect_coded`` is on, whenever it holds a
QR code at all. No trigger moves a protected attendee back to confirmed.

``apply`` is pure: it reads a snapshot and returns the changes to write,
together with the status the row must still have for the write to land.
The gateway turns that into a conditional update.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from guestlist.attendance.errors import InvalidStateError, ProtectedStateError
from guestlist.models import Attendee, AttendeeStatus, CheckInOrigin


class Trigger(str, Enum):
    RSVP = "rsvp"
    SCAN = "scan"
    MANUAL_CHECKIN = "checkin"
    UNDO_CHECKIN = "undo_checkin"
    MARK_ABSENT = "mark_absent"


@dataclass(frozen=True)
class AttendeeSnapshot:
    """The attendee fields the state machine looks at, frozen."""
    id: UUID
    event_id: UUID
    status: AttendeeStatus
    qr_code: str | None = None
    check_in_origin: CheckInOrigin = CheckInOrigin.NONE
    confirmed_at: datetime | None = None
    checked_in_at: datetime | None = None

    @classmethod
    def of(cls, attendee: Attendee) -> "AttendeeSnapshot":
        return cls(
            id=attendee.id,
            event_id=attendee.event_id,
            status=attendee.status,
            qr_code=attendee.qr_code,
            check_in_origin=attendee.check_in_origin,
            confirmed_at=attendee.confirmed_at,
            checked_in_at=attendee.checked_in_at,
        )


@dataclass(frozen=True)
class Transition:
    """Result of a successful ``apply``.

    Attributes:
        trigger: The trigger that was applied.
        expected_status: Status the stored row must still have when the
            change is written.
        target_status: Status after the change.
        changes: Column values to write, including ``status``.
    """
    trigger: Trigger
    expected_status: AttendeeStatus
    target_status: AttendeeStatus
    changes: dict[str, Any] = field(default_factory=dict)


def is_scanner_protected(snapshot: AttendeeSnapshot, protect_coded: bool = True) -> bool:
    """Whether a present attendee is locked against manual reversal."""
    if snapshot.status != AttendeeStatus.PRESENT:
        return False
    if snapshot.check_in_origin == CheckInOrigin.SCANNER:
        return True
    return protect_coded and snapshot.qr_code is not None


def _check_in_time(snapshot: AttendeeSnapshot, now: datetime) -> datetime:
    # Never record an arrival before the confirmation it follows.
    if snapshot.confirmed_at is not None and now < snapshot.confirmed_at:
        return snapshot.confirmed_at
    return now


def apply(
    snapshot: AttendeeSnapshot,
    trigger: Trigger,
    *,
    now: datetime,
    protect_coded: bool = True,
) -> Transition:
    """Validate ``trigger`` against ``snapshot`` and describe the result.

    Raises:
        ProtectedStateError: UNDO_CHECKIN on a scanner-protected attendee.
        InvalidStateError: Any other transition not allowed from the
            current status, including SCAN/MANUAL_CHECKIN on an attendee
            that is already present.
    """
    status = snapshot.status

    if trigger == Trigger.RSVP:
        if status != AttendeeStatus.PENDING:
            raise InvalidStateError(f"Cannot confirm attendance from status '{status.value}'")
        return Transition(
            trigger=trigger,
            expected_status=status,
            target_status=AttendeeStatus.CONFIRMED,
            changes={"status": AttendeeStatus.CONFIRMED, "confirmed_at": now},
        )

    if trigger in (Trigger.SCAN, Trigger.MANUAL_CHECKIN):
        if status == AttendeeStatus.PRESENT:
            raise InvalidStateError("Attendee is already checked in")
        if status != AttendeeStatus.CONFIRMED:
            raise InvalidStateError(f"Cannot check in an attendee with status '{status.value}'")
        if trigger == Trigger.SCAN and snapshot.qr_code is None:
            raise InvalidStateError("Attendee has no QR code to scan")
        origin = CheckInOrigin.SCANNER if trigger == Trigger.SCAN else CheckInOrigin.MANUAL
        return Transition(
            trigger=trigger,
            expected_status=status,
            target_status=AttendeeStatus.PRESENT,
            changes={
                "status": AttendeeStatus.PRESENT,
                "check_in_origin": origin,
                "checked_in_at": _check_in_time(snapshot, now),
            },
        )

    if trigger == Trigger.UNDO_CHECKIN:
        if is_scanner_protected(snapshot, protect_coded):
            raise ProtectedStateError(
                "This attendee checked in with their QR code and cannot be modified"
            )
        if status != AttendeeStatus.PRESENT:
            raise InvalidStateError(f"Cannot undo check-in for an attendee with status '{status.value}'")
        return Transition(
            trigger=trigger,
            expected_status=status,
            target_status=AttendeeStatus.CONFIRMED,
            changes={
                "status": AttendeeStatus.CONFIRMED,
                "check_in_origin": CheckInOrigin.NONE,
                "checked_in_at": None,
                "checked_in_by": None,
            },
        )

    if trigger == Trigger.MARK_ABSENT:
        if status not in (AttendeeStatus.PENDING, AttendeeStatus.CONFIRMED):
            raise InvalidStateError(f"Cannot mark absent from status '{status.value}'")
        return Transition(
            trigger=trigger,
            expected_status=status,
            target_status=AttendeeStatus.ABSENT,
            changes={"status": AttendeeStatus.ABSENT},
        )

    raise InvalidStateError(f"Unknown trigger '{trigger}'")

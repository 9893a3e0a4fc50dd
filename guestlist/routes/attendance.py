"""Attendance routes: RSVP, QR check-in, manual toggles and stats."""
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlmodel import Session

from guestlist.attendance.gateway import CheckInGateway
from guestlist.attendance.notifications import Notifier, get_notifier
from guestlist.attendance.stats import AttendanceStats
from guestlist.core.config import settings
from guestlist.core.database import get_session
from guestlist.schemas import (
    AttendeeRead,
    CheckInRequest,
    CheckInResponse,
    ConfirmAttendanceRequest,
    ConfirmAttendanceResponse,
    ManualCheckInRequest,
    RegisterArrivalRequest,
)

router = APIRouter(prefix="/events/{event_id}", tags=["attendance"])


def get_gateway(
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    notifier: Notifier = Depends(get_notifier),
) -> CheckInGateway:
    """Dependency for a gateway whose notifications run after the response."""
    return CheckInGateway(session, notifier=notifier, defer=background_tasks.add_task)


def view(attendee) -> AttendeeRead:
    return AttendeeRead.of(attendee, settings.protect_coded_manual_checkins)


@router.post("/confirm-attendance", response_model=ConfirmAttendanceResponse)
def confirm_attendance(
    event_id: UUID,
    payload: ConfirmAttendanceRequest,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """
    Confirm attendance (RSVP).

    Accepts either a registered ``user_id`` or guest contact fields
    (``guest_name``, ``guest_email``, optional ``guest_whatsapp``) plus the
    number of companions. Returns the attendee id and its QR code. A guest
    confirming twice gets the same record and code back.
    """
    attendee = gateway.confirm_attendance(event_id, payload)
    return ConfirmAttendanceResponse(
        attendee_id=attendee.id,
        qr_code=attendee.qr_code,
        status=attendee.status,
    )


@router.post("/checkin", response_model=CheckInResponse)
def check_in(
    event_id: UUID,
    payload: CheckInRequest,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """
    Check in an attendee by QR code.

    Works the same for camera scans and typed codes. Scanning a code that
    was already used returns 200 with ``already_checked_in`` set and the
    original ``checked_in_at``.
    """
    result = gateway.check_in_by_code(event_id, payload.qr_code, payload.checked_in_by)
    return CheckInResponse(
        **view(result.attendee).model_dump(),
        already_checked_in=result.already_checked_in,
    )


@router.post("/manual-checkin", response_model=AttendeeRead)
def manual_check_in(
    event_id: UUID,
    payload: ManualCheckInRequest,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """
    Toggle an attendee between confirmed and present.

    ``checkin`` moves a confirmed attendee to present. ``undo_checkin``
    moves a manually checked-in attendee back to confirmed; attendees who
    arrived with their QR code are protected and get 409 ``protected_state``.
    """
    attendee = gateway.check_in_manually(event_id, payload.attendee_id, payload.action)
    return view(attendee)


@router.post("/attendees", response_model=AttendeeRead, status_code=status.HTTP_201_CREATED)
def register_arrival(
    event_id: UUID,
    payload: RegisterArrivalRequest,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """
    Register an attendee by hand.

    For guests who show up without having confirmed. The record is created
    present (default) or confirmed, without a QR code, so the check-in can
    be undone later.
    """
    return view(gateway.register_arrival(event_id, payload))


@router.post("/attendees/{attendee_id}/absent", response_model=AttendeeRead)
def mark_absent(
    event_id: UUID,
    attendee_id: UUID,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """Mark a pending or confirmed attendee as absent. Not reversible."""
    return view(gateway.mark_absent(event_id, attendee_id))


@router.get("/attendees", response_model=list[AttendeeRead])
def list_attendees(
    event_id: UUID,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """List all attendees of the event, newest first."""
    return [view(attendee) for attendee in gateway.list_attendees(event_id)]


@router.get("/attendee-stats", response_model=AttendanceStats)
def attendee_stats(
    event_id: UUID,
    gateway: CheckInGateway = Depends(get_gateway),
):
    """Current attendance counts, computed fresh from the attendee rows."""
    return gateway.attendance_stats(event_id)


@router.get("/my-attendance", response_model=AttendeeRead | None)
def my_attendance(
    event_id: UUID,
    user_id: UUID = Query(...),
    gateway: CheckInGateway = Depends(get_gateway),
):
    """Attendance record of a registered user, or null if they never RSVP'd."""
    attendee = gateway.attendance_for_user(event_id, user_id)
    return view(attendee) if attendee else None

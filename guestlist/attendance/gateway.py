"""Check-in gateway: the entry point for RSVP, scanning and manual toggles.

The gateway resolves a request to one attendee, runs it through the state
machine and writes the result with a conditional update. It is the only
place that:

    - retries, and only once, when the store fails transiently during a
      read-then-conditional-write sequence (the write is guarded by the
      status read, so repeating it cannot double-apply);
    - dispatches notifications, after the change has committed.

Scanning is idempotent at this boundary: a second scan of a used code is
not an error and reports the original check-in time. When two scans race,
the conditional update lets exactly one of them win; the other reports the
winner's check-in as an already-checked-in result.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlmodel import Session

from guestlist.attendance import stats
from guestlist.attendance.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from guestlist.attendance.notifications import (
    AttendeeNotice,
    Notifier,
    check_confirmation_threshold,
    get_notifier,
    safe_notify,
)
from guestlist.attendance.qr import QRIssuer, normalize_code
from guestlist.attendance.state_machine import AttendeeSnapshot, Trigger, apply
from guestlist.attendance.store import AttendeeStore
from guestlist.core.clock import utcnow
from guestlist.core.config import Settings, settings as default_settings
from guestlist.models import Attendee, AttendeeStatus, CheckInOrigin, Event, User
from guestlist.schemas import ConfirmAttendanceRequest, RegisterArrivalRequest

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)

MANUAL_ACTIONS = {
    "checkin": Trigger.MANUAL_CHECKIN,
    "undo_checkin": Trigger.UNDO_CHECKIN,
}


@dataclass
class CheckInResult:
    attendee: Attendee
    already_checked_in: bool


class _LostRace(Exception):
    """A pending row was confirmed by another request mid-issuance."""


def _blank_to_none(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _normalized(request):
    """Copy of an identity request with contact fields trimmed.

    Emails are lowercased since they identify returning guests.
    """
    email = _blank_to_none(request.guest_email)
    return request.model_copy(
        update={
            "guest_name": _blank_to_none(request.guest_name),
            "guest_email": email.lower() if email else None,
            "guest_whatsapp": _blank_to_none(request.guest_whatsapp),
        }
    )


class CheckInGateway:
    """Attendance operations for one request.

    Args:
        session: Database session for this request.
        notifier: Notification sender; defaults to the logging notifier.
        settings: Application settings (QR limits, protection policy).
        defer: Schedules ``func(*args)`` to run later, e.g.
            ``BackgroundTasks.add_task``. Notifications run inline when
            omitted.
        clock: Returns the current naive-UTC time.
        issuer: QR issuer; built from ``settings`` when omitted.
    """

    def __init__(
        self,
        session: Session,
        notifier: Notifier | None = None,
        settings: Settings = default_settings,
        defer: Callable[..., None] | None = None,
        clock: Callable[[], datetime] = utcnow,
        issuer: QRIssuer | None = None,
    ):
        self.session = session
        self.store = AttendeeStore(session)
        self.notifier = notifier or get_notifier()
        self.protect_coded = settings.protect_coded_manual_checkins
        self.defer = defer
        self.clock = clock
        self.issuer = issuer or QRIssuer(
            max_attempts=settings.qr_max_attempts,
            random_length=settings.qr_random_length,
        )

    # Lookups

    def get_event(self, event_id: UUID) -> Event:
        event = self.session.get(Event, event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    def list_attendees(self, event_id: UUID) -> list[Attendee]:
        self.get_event(event_id)
        return self.store.list_for_event(event_id)

    def attendance_stats(self, event_id: UUID) -> stats.AttendanceStats:
        self.get_event(event_id)
        return stats.compute(self.session, event_id)

    def attendance_for_user(self, event_id: UUID, user_id: UUID) -> Attendee | None:
        self.get_event(event_id)
        return self.store.find_by_identity(event_id, user_id=user_id)

    # RSVP

    def confirm_attendance(self, event_id: UUID, request: ConfirmAttendanceRequest) -> Attendee:
        """Confirm a guest's RSVP and bind a fresh QR code to it.

        A returning guest (same user, or same guest email within the event)
        reuses their row. Rows that are already confirmed or present are
        returned untouched so their code never changes, except a confirmed
        row an admin registered without a code, which is issued one now.

        Raises:
            NotFoundError: Unknown event or user.
            ValidationError: Bad identity fields or too many companions.
            InvalidStateError: The guest was marked absent.
            IssuanceExhaustedError: No unique code could be issued.
        """
        event = self.get_event(event_id)
        request = _normalized(request)
        user = self._validate_identity(request, require_guest_email=True)
        self._validate_companions(event, request.companions_count)

        existing = self.store.find_by_identity(
            event_id, user_id=request.user_id, guest_email=request.guest_email
        )
        if existing is None:
            attendee = self._create_confirmed(event, request, user)
        elif existing.status == AttendeeStatus.PENDING:
            attendee = self._promote_pending(existing, request, user)
        elif existing.status == AttendeeStatus.CONFIRMED and existing.qr_code is None:
            attendee = self._bind_code(existing, request, user)
            logger.info(f"Attendee {attendee.id} received a QR code for event {event_id}")
            self._notify(self.notifier.attendance_confirmed, attendee, event)
            return attendee
        elif existing.status in (AttendeeStatus.CONFIRMED, AttendeeStatus.PRESENT):
            logger.info(f"Attendee {existing.id} already confirmed for event {event_id}")
            return existing
        else:
            raise InvalidStateError("This guest was marked absent and cannot confirm again")

        logger.info(f"Attendee {attendee.id} confirmed for event {event_id}")
        self._notify(self.notifier.attendance_confirmed, attendee, event)
        self._check_threshold(event)
        return attendee

    def _create_confirmed(
        self, event: Event, request: ConfirmAttendanceRequest, user: User | None
    ) -> Attendee:
        now = self.clock()
        pending = AttendeeSnapshot(id=uuid4(), event_id=event.id, status=AttendeeStatus.PENDING)
        transition = apply(pending, Trigger.RSVP, now=now, protect_coded=self.protect_coded)
        confirmed = replace(pending, status=transition.target_status, confirmed_at=now)

        def persist(code: str) -> None:
            self.store.insert(
                Attendee(
                    id=pending.id,
                    event_id=event.id,
                    qr_code=code,
                    companions_count=request.companions_count,
                    **self._identity_fields(request),
                    **transition.changes,
                )
            )

        self.issuer.issue(confirmed, persist, guest_name=self._name_for(request, user))
        return self.store.get(pending.id)

    def _promote_pending(
        self, attendee: Attendee, request: ConfirmAttendanceRequest, user: User | None
    ) -> Attendee:
        now = self.clock()
        snapshot = AttendeeSnapshot.of(attendee)
        transition = apply(snapshot, Trigger.RSVP, now=now, protect_coded=self.protect_coded)
        confirmed = replace(snapshot, status=transition.target_status, confirmed_at=now)
        attendee_id = attendee.id
        details = {"companions_count": request.companions_count}
        if request.user_id is None:
            details.update(
                guest_name=request.guest_name,
                guest_whatsapp=request.guest_whatsapp,
            )

        def persist(code: str) -> None:
            changes = {**transition.changes, **details, "qr_code": code}
            if not self.store.compare_and_set(
                attendee_id, transition.expected_status, changes, code_unset=True
            ):
                raise _LostRace()

        try:
            self.issuer.issue(confirmed, persist, guest_name=self._name_for(request, user))
        except _LostRace:
            current = self.store.reload(attendee_id)
            if current is not None and current.status in (
                AttendeeStatus.CONFIRMED,
                AttendeeStatus.PRESENT,
            ):
                return current
            raise InvalidStateError("Attendance was changed by another request")
        return self.store.reload(attendee_id)

    def _bind_code(
        self, attendee: Attendee, request: ConfirmAttendanceRequest, user: User | None
    ) -> Attendee:
        """Issue a code to a row an admin registered as confirmed without one."""
        attendee_id = attendee.id

        def persist(code: str) -> None:
            if not self.store.compare_and_set(
                attendee_id, AttendeeStatus.CONFIRMED, {"qr_code": code}, code_unset=True
            ):
                raise _LostRace()

        try:
            self.issuer.issue(
                AttendeeSnapshot.of(attendee), persist, guest_name=self._name_for(request, user)
            )
        except _LostRace:
            current = self.store.reload(attendee_id)
            if current is not None and current.qr_code is not None:
                return current
            raise InvalidStateError("Attendance was changed by another request")
        return self.store.reload(attendee_id)

    # Check-in

    def check_in_by_code(
        self, event_id: UUID, raw_code: str, checked_in_by: str | None = None
    ) -> CheckInResult:
        """Check in the attendee holding ``raw_code``.

        Typed and scanned codes are normalized identically. Repeating the
        call for a code that is already checked in returns the original
        ``checked_in_at`` with ``already_checked_in`` set.

        Raises:
            ValidationError: Empty code, or code issued for another event.
            NotFoundError: No attendee holds the code.
            InvalidStateError: The attendee cannot be checked in (absent).
        """
        code = normalize_code(raw_code or "")
        if not code:
            raise ValidationError("QR code is required")
        return self._retry_transient(lambda: self._check_in_by_code(event_id, code, checked_in_by))

    def _check_in_by_code(
        self, event_id: UUID, code: str, checked_in_by: str | None
    ) -> CheckInResult:
        attendee = self.store.get_by_code(code)
        if attendee is None:
            raise NotFoundError("Invalid QR code")
        if attendee.event_id != event_id:
            raise ValidationError("QR code does not belong to this event")
        if attendee.status == AttendeeStatus.PRESENT:
            return self._already_checked_in(attendee)

        transition = apply(
            AttendeeSnapshot.of(attendee),
            Trigger.SCAN,
            now=self.clock(),
            protect_coded=self.protect_coded,
        )
        attendee_id = attendee.id
        changes = {**transition.changes, "checked_in_by": checked_in_by}
        if not self.store.compare_and_set(attendee_id, transition.expected_status, changes):
            current = self.store.reload(attendee_id)
            if current is not None and current.status == AttendeeStatus.PRESENT:
                return self._already_checked_in(current)
            raise InvalidStateError("Attendee was modified by another request")

        attendee = self.store.reload(attendee_id)
        logger.info(
            f"Attendee {attendee_id} checked in to event {event_id} "
            f"(confirmed -> present, scanner)"
        )
        self._notify(self.notifier.checked_in, attendee, attendee.event)
        return CheckInResult(attendee=attendee, already_checked_in=False)

    def _already_checked_in(self, attendee: Attendee) -> CheckInResult:
        logger.info(f"Attendee {attendee.id} already checked in at {attendee.checked_in_at}")
        return CheckInResult(attendee=attendee, already_checked_in=True)

    def check_in_manually(self, event_id: UUID, attendee_id: UUID, action: str) -> Attendee:
        """Admin toggle between confirmed and present.

        ``checkin`` requires a confirmed attendee. ``undo_checkin`` requires
        a present attendee that is not scanner-protected.

        Raises:
            ValidationError: Unknown action, or attendee in another event.
            NotFoundError: Unknown attendee.
            ProtectedStateError: Undo on a scanner-protected check-in.
            InvalidStateError: Action not allowed from the current status.
        """
        trigger = MANUAL_ACTIONS.get(action)
        if trigger is None:
            raise ValidationError("action must be 'checkin' or 'undo_checkin'")
        return self._retry_transient(lambda: self._apply_admin(event_id, attendee_id, trigger))

    def mark_absent(self, event_id: UUID, attendee_id: UUID) -> Attendee:
        """Admin-only: record a pending or confirmed guest as absent."""
        return self._retry_transient(
            lambda: self._apply_admin(event_id, attendee_id, Trigger.MARK_ABSENT)
        )

    def _apply_admin(self, event_id: UUID, attendee_id: UUID, trigger: Trigger) -> Attendee:
        attendee = self.store.get(attendee_id)
        if attendee is None:
            raise NotFoundError("Attendee not found")
        if attendee.event_id != event_id:
            raise ValidationError("Attendee does not belong to this event")

        snapshot = AttendeeSnapshot.of(attendee)
        transition = apply(snapshot, trigger, now=self.clock(), protect_coded=self.protect_coded)
        if not self.store.compare_and_set(attendee_id, transition.expected_status, transition.changes):
            raise InvalidStateError("Attendee was modified by another request, reload and retry")

        attendee = self.store.reload(attendee_id)
        logger.info(
            f"Attendee {attendee_id} {snapshot.status.value} -> "
            f"{transition.target_status.value} ({trigger.value}) by admin"
        )
        if trigger == Trigger.MANUAL_CHECKIN:
            self._notify(self.notifier.checked_in, attendee, attendee.event)
        elif trigger == Trigger.UNDO_CHECKIN:
            self._notify(self.notifier.check_in_undone, attendee, attendee.event)
        return attendee

    def register_arrival(self, event_id: UUID, request: RegisterArrivalRequest) -> Attendee:
        """Admin-created attendee, present or confirmed, without a QR code.

        Raises:
            NotFoundError: Unknown event or user.
            ValidationError: Bad identity fields or too many companions.
            InvalidStateError: The guest already has a row for this event.
        """
        event = self.get_event(event_id)
        request = _normalized(request)
        self._validate_identity(request, require_guest_email=False)
        self._validate_companions(event, request.companions_count)
        if self.store.find_by_identity(
            event_id, user_id=request.user_id, guest_email=request.guest_email
        ):
            raise InvalidStateError("This guest is already registered for the event")

        now = self.clock()
        status = AttendeeStatus(request.status)
        attendee = Attendee(
            event_id=event_id,
            companions_count=request.companions_count,
            status=status,
            confirmed_at=now,
            **self._identity_fields(request),
        )
        if status == AttendeeStatus.PRESENT:
            attendee.checked_in_at = now
            attendee.check_in_origin = CheckInOrigin.MANUAL
        attendee = self.store.insert(attendee)

        logger.info(f"Attendee {attendee.id} registered by admin as {status.value} for event {event_id}")
        if status == AttendeeStatus.PRESENT:
            self._notify(self.notifier.checked_in, attendee, event)
        return attendee

    # Helpers

    def _validate_identity(
        self,
        request: ConfirmAttendanceRequest | RegisterArrivalRequest,
        require_guest_email: bool,
    ) -> User | None:
        guest_fields = (request.guest_name, request.guest_email, request.guest_whatsapp)
        if request.user_id is not None:
            if any(guest_fields):
                raise ValidationError("Provide either user_id or guest contact fields, not both")
            user = self.session.get(User, request.user_id)
            if user is None:
                raise NotFoundError("User not found")
            return user

        if not (request.guest_name or "").strip():
            raise ValidationError("guest_name is required for guests")
        if require_guest_email and not (request.guest_email or "").strip():
            raise ValidationError("guest_email is required for guests")
        if request.guest_email and "@" not in request.guest_email:
            raise ValidationError("guest_email is not a valid email address")
        return None

    def _validate_companions(self, event: Event, companions_count: int) -> None:
        if companions_count < 0:
            raise ValidationError("companions_count cannot be negative")
        if companions_count > event.max_companions:
            raise ValidationError(
                f"This event allows at most {event.max_companions} companions per guest"
            )

    @staticmethod
    def _identity_fields(request: ConfirmAttendanceRequest | RegisterArrivalRequest) -> dict:
        if request.user_id is not None:
            return {"user_id": request.user_id}
        return {
            "guest_name": request.guest_name,
            "guest_email": request.guest_email,
            "guest_whatsapp": request.guest_whatsapp,
        }

    @staticmethod
    def _name_for(request: ConfirmAttendanceRequest, user: User | None) -> str | None:
        if user is not None:
            return user.full_name or user.username
        return request.guest_name

    def _retry_transient(self, operation: Callable[[], object]):
        try:
            return operation()
        except TRANSIENT_ERRORS as exc:
            logger.warning(f"Transient store error, retrying once: {exc}")
            self.store.rollback()
            return operation()

    def _notify(self, method: Callable[..., None], attendee: Attendee, event: Event) -> None:
        self._dispatch(method, AttendeeNotice.of(attendee, event))

    def _dispatch(self, method: Callable[..., None], *args) -> None:
        if self.defer is not None:
            self.defer(safe_notify, method, *args)
        else:
            safe_notify(method, *args)

    def _check_threshold(self, event: Event) -> None:
        try:
            current = stats.compute(self.session, event.id)
            check_confirmation_threshold(
                self.session, event, current, self.notifier, dispatch=self._dispatch
            )
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception(f"Confirmation threshold check failed for event {event.id}")

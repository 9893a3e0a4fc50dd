"""Tests for the attendance state machine."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from guestlist.attendance.errors import InvalidStateError, ProtectedStateError
from guestlist.attendance.state_machine import (
    AttendeeSnapshot,
    Trigger,
    apply,
    is_scanner_protected,
)
from guestlist.models import AttendeeStatus, CheckInOrigin

NOW = datetime(2026, 5, 9, 19, 30)


def snapshot(status, qr_code=None, origin=CheckInOrigin.NONE, confirmed_at=None):
    return AttendeeSnapshot(
        id=uuid4(),
        event_id=uuid4(),
        status=status,
        qr_code=qr_code,
        check_in_origin=origin,
        confirmed_at=confirmed_at,
    )


class TestRsvp:
    """Tests for pending -> confirmed."""

    def test_confirm_pending(self):
        """Test RSVP confirms a pending attendee and stamps the time."""
        transition = apply(snapshot(AttendeeStatus.PENDING), Trigger.RSVP, now=NOW)

        assert transition.expected_status == AttendeeStatus.PENDING
        assert transition.target_status == AttendeeStatus.CONFIRMED
        assert transition.changes["confirmed_at"] == NOW

    @pytest.mark.parametrize(
        "status", [AttendeeStatus.CONFIRMED, AttendeeStatus.PRESENT, AttendeeStatus.ABSENT]
    )
    def test_rsvp_only_from_pending(self, status):
        """Test RSVP is rejected from any other status."""
        with pytest.raises(InvalidStateError):
            apply(snapshot(status), Trigger.RSVP, now=NOW)


class TestCheckIn:
    """Tests for confirmed -> present."""

    def test_scan_sets_scanner_origin(self):
        """Test a scan records the scanner origin and arrival time."""
        transition = apply(
            snapshot(AttendeeStatus.CONFIRMED, qr_code="MARIA-1A2B-XYZ23456"),
            Trigger.SCAN,
            now=NOW,
        )

        assert transition.target_status == AttendeeStatus.PRESENT
        assert transition.changes["check_in_origin"] == CheckInOrigin.SCANNER
        assert transition.changes["checked_in_at"] == NOW

    def test_manual_checkin_sets_manual_origin(self):
        """Test a manual check-in records the manual origin."""
        transition = apply(snapshot(AttendeeStatus.CONFIRMED), Trigger.MANUAL_CHECKIN, now=NOW)

        assert transition.changes["check_in_origin"] == CheckInOrigin.MANUAL

    def test_scan_requires_code(self):
        """Test a scan cannot check in an attendee without a code."""
        with pytest.raises(InvalidStateError):
            apply(snapshot(AttendeeStatus.CONFIRMED), Trigger.SCAN, now=NOW)

    @pytest.mark.parametrize("trigger", [Trigger.SCAN, Trigger.MANUAL_CHECKIN])
    def test_already_present(self, trigger):
        """Test checking in twice is an invalid transition at this level."""
        present = snapshot(AttendeeStatus.PRESENT, qr_code="A-1-B", origin=CheckInOrigin.SCANNER)
        with pytest.raises(InvalidStateError, match="already checked in"):
            apply(present, trigger, now=NOW)

    @pytest.mark.parametrize("status", [AttendeeStatus.PENDING, AttendeeStatus.ABSENT])
    def test_checkin_requires_confirmed(self, status):
        """Test pending and absent attendees cannot be checked in."""
        with pytest.raises(InvalidStateError):
            apply(snapshot(status), Trigger.MANUAL_CHECKIN, now=NOW)

    def test_checkin_never_before_confirmation(self):
        """Test the arrival time is clamped to the confirmation time."""
        later = NOW + timedelta(minutes=5)
        transition = apply(
            snapshot(AttendeeStatus.CONFIRMED, confirmed_at=later),
            Trigger.MANUAL_CHECKIN,
            now=NOW,
        )
        assert transition.changes["checked_in_at"] == later


class TestUndoCheckIn:
    """Tests for present -> confirmed."""

    def test_undo_manual_checkin(self):
        """Test a manual check-in can be undone and origin is reset."""
        present = snapshot(AttendeeStatus.PRESENT, origin=CheckInOrigin.MANUAL)
        transition = apply(present, Trigger.UNDO_CHECKIN, now=NOW)

        assert transition.target_status == AttendeeStatus.CONFIRMED
        assert transition.changes["check_in_origin"] == CheckInOrigin.NONE
        assert transition.changes["checked_in_at"] is None

    def test_undo_scanner_checkin_is_protected(self):
        """Test a scanned check-in cannot be undone."""
        present = snapshot(AttendeeStatus.PRESENT, qr_code="A-1-B", origin=CheckInOrigin.SCANNER)
        with pytest.raises(ProtectedStateError):
            apply(present, Trigger.UNDO_CHECKIN, now=NOW)

    def test_coded_manual_checkin_protection_follows_setting(self):
        """Test a coded guest checked in by hand is protected only when configured."""
        present = snapshot(AttendeeStatus.PRESENT, qr_code="A-1-B", origin=CheckInOrigin.MANUAL)

        with pytest.raises(ProtectedStateError):
            apply(present, Trigger.UNDO_CHECKIN, now=NOW, protect_coded=True)

        transition = apply(present, Trigger.UNDO_CHECKIN, now=NOW, protect_coded=False)
        assert transition.target_status == AttendeeStatus.CONFIRMED

    @pytest.mark.parametrize(
        "status", [AttendeeStatus.PENDING, AttendeeStatus.CONFIRMED, AttendeeStatus.ABSENT]
    )
    def test_undo_requires_present(self, status):
        """Test undo from anything but present is invalid."""
        with pytest.raises(InvalidStateError):
            apply(snapshot(status), Trigger.UNDO_CHECKIN, now=NOW)

    @pytest.mark.parametrize("protect_coded", [True, False])
    @pytest.mark.parametrize("trigger", list(Trigger))
    def test_no_trigger_reverses_protected_attendee(self, trigger, protect_coded):
        """Test no trigger at all moves a scanned attendee out of present."""
        present = snapshot(AttendeeStatus.PRESENT, qr_code="A-1-B", origin=CheckInOrigin.SCANNER)
        with pytest.raises((InvalidStateError, ProtectedStateError)):
            apply(present, trigger, now=NOW, protect_coded=protect_coded)


class TestMarkAbsent:
    """Tests for -> absent."""

    @pytest.mark.parametrize("status", [AttendeeStatus.PENDING, AttendeeStatus.CONFIRMED])
    def test_mark_absent(self, status):
        """Test pending and confirmed attendees can be marked absent."""
        transition = apply(snapshot(status), Trigger.MARK_ABSENT, now=NOW)
        assert transition.target_status == AttendeeStatus.ABSENT

    @pytest.mark.parametrize("status", [AttendeeStatus.PRESENT, AttendeeStatus.ABSENT])
    def test_mark_absent_rejected(self, status):
        """Test present and absent attendees cannot be marked absent."""
        with pytest.raises(InvalidStateError):
            apply(snapshot(status), Trigger.MARK_ABSENT, now=NOW)

    @pytest.mark.parametrize("trigger", list(Trigger))
    def test_absent_is_terminal(self, trigger):
        """Test nothing leaves the absent status."""
        with pytest.raises(InvalidStateError):
            apply(snapshot(AttendeeStatus.ABSENT, qr_code="A-1-B"), trigger, now=NOW)


class TestScannerProtection:
    """Tests for is_scanner_protected."""

    def test_not_present_is_never_protected(self):
        """Test protection only applies to present attendees."""
        confirmed = snapshot(AttendeeStatus.CONFIRMED, qr_code="A-1-B")
        assert is_scanner_protected(confirmed) is False

    def test_manual_without_code_is_unprotected(self):
        """Test a manual check-in without a code stays reversible."""
        present = snapshot(AttendeeStatus.PRESENT, origin=CheckInOrigin.MANUAL)
        assert is_scanner_protected(present) is False

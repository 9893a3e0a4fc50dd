"""Tests for QR code issuance."""

import re
from uuid import UUID, uuid4

import pytest

from guestlist.attendance.errors import (
    CodeCollisionError,
    InvalidStateError,
    IssuanceExhaustedError,
)
from guestlist.attendance.qr import (
    ALPHABET,
    QRIssuer,
    default_token,
    name_fragment,
    normalize_code,
)
from guestlist.attendance.state_machine import AttendeeSnapshot
from guestlist.models import AttendeeStatus

EVENT_ID = UUID("6f1c2d3e-4a5b-4c6d-8e7f-90a1b2c39f3a")
CODE_PATTERN = re.compile(rf"^[A-Z]{{1,6}}-[0-9A-F]{{4}}-[{ALPHABET}]{{8}}$")


def confirmed(qr_code=None, status=AttendeeStatus.CONFIRMED):
    return AttendeeSnapshot(id=uuid4(), event_id=EVENT_ID, status=status, qr_code=qr_code)


def tokens(*values):
    """Token factory returning ``values`` in order."""
    remaining = list(values)
    return lambda length: remaining.pop(0)


class TestCodeFormat:
    """Tests for minting and normalizing codes."""

    def test_mint_format(self):
        """Test a minted code has name, event and random parts."""
        code = QRIssuer().mint(confirmed(), guest_name="Lennin")

        assert CODE_PATTERN.match(code)
        assert code.startswith("LENNIN-9F3A-")

    def test_default_token_alphabet(self):
        """Test random parts avoid ambiguous characters."""
        token = default_token(64)
        assert len(token) == 64
        assert not set(token) & set("01OIL")

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Maria Lopez", "MARIAL"),
            ("Ana", "ANA"),
            ("José", "JOS"),
            ("  42 ", "GUEST"),
            (None, "GUEST"),
        ],
    )
    def test_name_fragment(self, name, expected):
        """Test the readable prefix of a code."""
        assert name_fragment(name) == expected

    def test_normalize_code(self):
        """Test typed codes are trimmed and uppercased like scanned ones."""
        assert normalize_code("  maria-9f3a-k7qm x2rt\n") == "MARIA-9F3A-K7QMX2RT"


class TestIssue:
    """Tests for QRIssuer.issue."""

    def test_issue_persists_code(self):
        """Test the minted code is handed to persist and returned."""
        persisted = []
        issuer = QRIssuer(token_factory=tokens("ABCDEFGH"))

        code = issuer.issue(confirmed(), persisted.append, guest_name="Ana")

        assert code == "ANA-9F3A-ABCDEFGH"
        assert persisted == [code]

    def test_retries_on_collision(self):
        """Test a collision is retried with a fresh code."""
        attempts = []

        def persist(code):
            attempts.append(code)
            if len(attempts) == 1:
                raise CodeCollisionError(code)

        issuer = QRIssuer(token_factory=tokens("AAAAAAAA", "BBBBBBBB"))
        code = issuer.issue(confirmed(), persist, guest_name="Ana")

        assert code == "ANA-9F3A-BBBBBBBB"
        assert attempts == ["ANA-9F3A-AAAAAAAA", "ANA-9F3A-BBBBBBBB"]

    def test_exhaustion(self):
        """Test issuance gives up after max_attempts collisions."""
        attempts = []

        def persist(code):
            attempts.append(code)
            raise CodeCollisionError(code)

        issuer = QRIssuer(max_attempts=3)
        with pytest.raises(IssuanceExhaustedError):
            issuer.issue(confirmed(), persist)

        assert len(attempts) == 3

    @pytest.mark.parametrize(
        "status", [AttendeeStatus.PENDING, AttendeeStatus.PRESENT, AttendeeStatus.ABSENT]
    )
    def test_requires_confirmed(self, status):
        """Test codes are only issued to confirmed attendees."""
        persisted = []
        with pytest.raises(InvalidStateError):
            QRIssuer().issue(confirmed(status=status), persisted.append)
        assert persisted == []

    def test_never_reissues(self):
        """Test an attendee that already holds a code gets no new one."""
        with pytest.raises(InvalidStateError):
            QRIssuer().issue(confirmed(qr_code="ANA-9F3A-ABCDEFGH"), lambda code: None)

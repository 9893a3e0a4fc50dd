"""QR code issuance for confirmed attendees.

Codes look like ``LENNIN-9F3A-K7QMX2RT``:

    - up to 6 letters of the guest's name (``GUEST`` when there are none),
    - the last 4 hex characters of the event id,
    - random characters from an alphabet without 0/O, 1/I/L.

Nothing in a code is secret beyond the random part, so it can be read out
loud or typed in when the camera scanner is unavailable. ``normalize_code``
is applied on both paths, which makes typed and scanned codes equivalent.
"""
import logging
import re
import secrets
from collections.abc import Callable

from guestlist.attendance.errors import (
    CodeCollisionError,
    InvalidStateError,
    IssuanceExhaustedError,
)
from guestlist.attendance.state_machine import AttendeeSnapshot
from guestlist.models import AttendeeStatus

logger = logging.getLogger(__name__)

ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"
NAME_FRAGMENT_LENGTH = 6
EVENT_FRAGMENT_LENGTH = 4


def default_token(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def name_fragment(name: str | None) -> str:
    """Uppercase ASCII letters of ``name``, truncated; ``GUEST`` if none."""
    letters = re.sub(r"[^A-Za-z]", "", name or "")
    return letters[:NAME_FRAGMENT_LENGTH].upper() or "GUEST"


def normalize_code(raw: str) -> str:
    """Canonical form of a scanned or typed code."""
    return re.sub(r"\s+", "", raw).upper()


class QRIssuer:
    """Mints check-in codes and binds them through a persist callback.

    The issuer does not talk to the database itself. ``issue`` hands each
    candidate to ``persist``, which must write the code together with the
    confirmation in a single commit and raise ``CodeCollisionError`` when
    the unique index rejects it.

    Usage:
        >>> issuer = QRIssuer(max_attempts=5)
        >>> code = issuer.issue(snapshot, persist, guest_name="Lennin")
    """

    def __init__(
        self,
        max_attempts: int = 5,
        random_length: int = 8,
        token_factory: Callable[[int], str] = default_token,
    ):
        self.max_attempts = max_attempts
        self.random_length = random_length
        self.token_factory = token_factory

    def mint(self, snapshot: AttendeeSnapshot, guest_name: str | None = None) -> str:
        """Build one candidate code for ``snapshot``. Does not persist."""
        event_fragment = snapshot.event_id.hex[-EVENT_FRAGMENT_LENGTH:].upper()
        token = self.token_factory(self.random_length)
        return f"{name_fragment(guest_name)}-{event_fragment}-{token}"

    def issue(
        self,
        snapshot: AttendeeSnapshot,
        persist: Callable[[str], None],
        guest_name: str | None = None,
    ) -> str:
        """Mint a code for a confirmed attendee and persist it.

        Args:
            snapshot: The attendee as it will be once confirmed.
            persist: Writes the code; raises ``CodeCollisionError`` on a
                uniqueness violation.
            guest_name: Name used for the readable prefix.

        Returns:
            The code that was persisted.

        Raises:
            InvalidStateError: The attendee is not confirmed or already
                has a code.
            IssuanceExhaustedError: Every attempt collided.
        """
        if snapshot.status != AttendeeStatus.CONFIRMED:
            raise InvalidStateError(
                f"QR codes are only issued to confirmed attendees, not '{snapshot.status.value}'"
            )
        if snapshot.qr_code is not None:
            raise InvalidStateError("Attendee already has a QR code")

        for attempt in range(1, self.max_attempts + 1):
            code = self.mint(snapshot, guest_name)
            try:
                persist(code)
            except CodeCollisionError:
                logger.warning(
                    f"QR collision for attendee {snapshot.id} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                continue
            logger.info(f"Issued QR code for attendee {snapshot.id}")
            return code

        raise IssuanceExhaustedError(
            f"Could not issue a unique QR code after {self.max_attempts} attempts"
        )

"""Shared test fixtures."""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from guestlist.attendance.gateway import CheckInGateway
from guestlist.attendance.notifications import get_notifier
from guestlist.core.database import get_session, set_sqlite_pragma
from guestlist.main import app
from guestlist.models import Attendee, AttendeeStatus, Event, EventNotificationSettings, User
from guestlist.schemas import ConfirmAttendanceRequest


class RecordingNotifier:
    """Notifier that keeps every call for assertions."""

    def __init__(self):
        self.calls = []

    def _record(self, kind, *args):
        self.calls.append((kind, *args))

    def attendance_confirmed(self, notice):
        self._record("attendance_confirmed", notice)

    def checked_in(self, notice):
        self._record("checked_in", notice)

    def check_in_undone(self, notice):
        self._record("check_in_undone", notice)

    def confirmation_threshold_reached(self, notice):
        self._record("confirmation_threshold_reached", notice)

    def check_in_reminder(self, notice, days_before):
        self._record("check_in_reminder", notice, days_before)

    def kinds(self):
        return [call[0] for call in self.calls]


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    sa_event.listen(engine, "connect", set_sqlite_pragma)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="file_engine")
def file_engine_fixture(tmp_path):
    """SQLite database on disk, for tests that need several connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'guestlist.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    sa_event.listen(engine, "connect", set_sqlite_pragma)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="client")
def client_fixture(session: Session, notifier: RecordingNotifier):
    """Create a test client with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_notifier] = lambda: notifier
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="gateway")
def gateway_fixture(session: Session, notifier: RecordingNotifier) -> CheckInGateway:
    """Gateway that sends notifications inline to the recording notifier."""
    return CheckInGateway(session, notifier=notifier)


@pytest.fixture(name="owner")
def owner_fixture(session: Session) -> User:
    """Create the user that owns test events."""
    user = User(username="curator", email="curator@example.com", full_name="Ana Curator")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="member")
def member_fixture(session: Session) -> User:
    """Create a registered user who RSVPs as themselves."""
    user = User(username="lennin", email="lennin@example.com", full_name="Lennin Vargas")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture(name="sample_event")
def sample_event_fixture(session: Session, owner: User) -> Event:
    """Create an event happening tomorrow."""
    event = Event(
        title="Gallery Opening",
        description="Spring collection",
        event_date=date.today() + timedelta(days=1),
        max_companions=2,
        owner_id=owner.id,
    )
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@pytest.fixture(name="other_event")
def other_event_fixture(session: Session, owner: User) -> Event:
    """Create a second event to test cross-event checks."""
    event = Event(title="Artist Talk", owner_id=owner.id)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@pytest.fixture(name="event_settings")
def event_settings_fixture(session: Session, sample_event: Event) -> EventNotificationSettings:
    """Notification settings with a low threshold for the sample event."""
    settings = EventNotificationSettings(
        event_id=sample_event.id,
        admin_email="curator@example.com",
        attendee_confirmations_threshold=2,
    )
    session.add(settings)
    session.commit()
    session.refresh(settings)
    return settings


@pytest.fixture(name="confirmed_guest")
def confirmed_guest_fixture(gateway: CheckInGateway, sample_event: Event, notifier) -> Attendee:
    """A guest who RSVP'd and holds a QR code."""
    attendee = gateway.confirm_attendance(
        sample_event.id,
        ConfirmAttendanceRequest(
            guest_name="Maria Lopez",
            guest_email="maria@example.com",
            companions_count=1,
        ),
    )
    notifier.calls.clear()
    return attendee


@pytest.fixture(name="pending_guest")
def pending_guest_fixture(session: Session, sample_event: Event) -> Attendee:
    """A guest row that exists but has not confirmed yet."""
    attendee = Attendee(
        event_id=sample_event.id,
        guest_name="Pedro Ruiz",
        guest_email="pedro@example.com",
        status=AttendeeStatus.PENDING,
    )
    session.add(attendee)
    session.commit()
    session.refresh(attendee)
    return attendee

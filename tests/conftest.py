"""
Pytest configuration and fixtures
"""
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from sqlalchemy.orm import Session

from helpdesk.config import Settings
from helpdesk.infrastructure.config_manager import HelpdeskConfigManager
from helpdesk.infrastructure.database import build_engine, create_tables
from helpdesk.main import build_helpdesk
from helpdesk.notifications import (
    NotificationChannel, NotificationDispatcher, NotificationPayload
)
from helpdesk.shared.infrastructure.events import EventDispatcher
from helpdesk.tickets.application import TicketCreateDTO


T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingChannel(NotificationChannel):
    """Keeps every payload it receives."""

    def __init__(self, name: str = "recording", external: bool = False):
        self.name = name
        self.external = external
        self.sent: List[NotificationPayload] = []

    def send(self, payload: NotificationPayload) -> bool:
        self.sent.append(payload)
        return True


class EventRecorder:
    """Collects published domain events."""

    def __init__(self):
        self.events = []

    def __call__(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type):
        return [event for event in self.events if isinstance(event, event_type)]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        database_url="sqlite://",
        notification_channels=["log"],
        sla_evaluation_interval=0,
        reopen_window_days=30,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine("sqlite://", settings)
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = Session(engine, expire_on_commit=False, autoflush=False)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def config_manager() -> HelpdeskConfigManager:
    return HelpdeskConfigManager.from_config()


@pytest.fixture
def internal_channel() -> RecordingChannel:
    return RecordingChannel("internal", external=False)


@pytest.fixture
def external_channel() -> RecordingChannel:
    return RecordingChannel("external", external=True)


@pytest.fixture
def notifier(internal_channel, external_channel, clock) -> NotificationDispatcher:
    return NotificationDispatcher([internal_channel, external_channel], clock=clock)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def events(recorder) -> EventDispatcher:
    dispatcher = EventDispatcher()
    dispatcher.subscribe(object, recorder)
    return dispatcher


@pytest.fixture
def helpdesk(session, config_manager, settings, clock, notifier, events):
    return build_helpdesk(
        session,
        config_manager,
        settings=settings,
        clock=clock,
        notifier=notifier,
        events=events,
    )


@pytest.fixture
def make_ticket(helpdesk):
    """Create a stored ticket through the ticket service."""

    def _make(**kwargs):
        data = {"subject": "Printer on fire", "customer_name": "Ada", "customer_email": "ada@example.com"}
        data.update(kwargs)
        return helpdesk.tickets.create_ticket(TicketCreateDTO(**data))

    return _make

"""
Shared pytest fixtures for all tests.

Provides a temporary reminder database, a recording notifier, an in-memory
event source and a factory for clinical events.
"""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

# Headless settings before any project module reads the environment
os.environ.setdefault("NOTIFIER_BACKEND", "log")
os.environ.setdefault("VOICE_ALERTS_DEFAULT", "true")
os.environ.setdefault("DUE_SLACK_SECONDS", "60")
os.environ.setdefault("DISPLAY_TIMEZONE", "Africa/Lagos")
os.environ.setdefault("BRIDGE_WS_TOKEN", "")
os.environ.setdefault("ENABLE_BACKGROUND_BRIDGE", "true")

import pytest
import pytest_asyncio

import storage.db_config as db_config
from datamodel import (
    DeliveryResult,
    DomainEvent,
    EventKind,
    NotificationPayload,
    Priority,
    Urgency,
)
from notifier.base import Notifier
from sources.memory import InMemoryEventSource


# ============================================================================
# TIME HELPERS
# ============================================================================

BASE_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant (D 09:00 UTC)."""
    return BASE_NOW


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def db(tmp_path) -> AsyncGenerator[None, None]:
    """Fresh reminder database per test."""
    await db_config.init_db(str(tmp_path / "reminders.db"))
    try:
        yield
    finally:
        await db_config.close_db()


# ============================================================================
# DOMAIN FIXTURES
# ============================================================================


def make_event(
    event_id: str = "surg-1",
    kind: EventKind = EventKind.SURGERY,
    scheduled_at: datetime | None = None,
    priority: Priority = Priority.ROUTINE,
    offset_policy: tuple[int, ...] = (),
    title: str = "Appendectomy",
    location: str | None = "Theatre 2",
) -> DomainEvent:
    return DomainEvent(
        id=event_id,
        kind=kind,
        title=title,
        patient_id="pat-1",
        patient_name="Ada Obi",
        hospital_id="hosp-1",
        hospital_name="St. Mary",
        scheduled_at=scheduled_at or BASE_NOW + timedelta(days=2, hours=1),
        priority=priority,
        offset_policy=offset_policy,
        location=location,
        details="Surgeon: Dr. Eze",
    )


@pytest.fixture
def event_factory():
    return make_event


@pytest.fixture
def source() -> InMemoryEventSource:
    return InMemoryEventSource()


class RecordingNotifier(Notifier):
    """Notifier double that records every call."""

    def __init__(
        self,
        visual_ok: bool = True,
        speech_ok: bool = True,
        visual_delay: float = 0.0,
        visual_error: Exception | None = None,
        hold: asyncio.Event | None = None,
    ) -> None:
        self.visual_ok = visual_ok
        self.speech_ok = speech_ok
        self.visual_delay = visual_delay
        self.visual_error = visual_error
        self.hold = hold
        self.entered = asyncio.Event()
        self.shown: list[NotificationPayload] = []
        self.spoken: list[tuple[str, Urgency]] = []
        self.tones: list[Urgency] = []

    async def show_visual(self, payload: NotificationPayload) -> DeliveryResult:
        self.entered.set()
        if self.hold is not None:
            await self.hold.wait()
        if self.visual_delay:
            await asyncio.sleep(self.visual_delay)
        if self.visual_error is not None:
            raise self.visual_error
        self.shown.append(payload)
        if not self.visual_ok:
            return DeliveryResult.failure("permission denied")
        return DeliveryResult.success()

    async def speak(self, text: str, urgency: Urgency) -> bool:
        self.spoken.append((text, urgency))
        return self.speech_ok

    async def play_tone(self, urgency: Urgency) -> None:
        self.tones.append(urgency)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()

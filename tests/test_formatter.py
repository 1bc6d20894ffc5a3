"""
Tests for notification text rendering and time helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import make_event

from datamodel import ArtifactKind, ChannelHint, ClinicalArtifact, EventKind, ReminderEntry, Urgency
from scheduler.formatter import render_artifact, render_reminder
from utils import format_local_clock, format_time_until, from_db_str, to_db_str


def _entry_for(event, offset: int) -> ReminderEntry:
    return ReminderEntry(
        id=ReminderEntry.make_id(event.id, offset),
        event_id=event.id,
        event_kind=event.kind,
        scheduled_for=event.scheduled_at - timedelta(minutes=offset),
        offset_minutes=offset,
        channel_hint=ChannelHint.VOICE_VISUAL,
    )


class TestRenderReminder:
    """Tests for scheduled reminder payloads."""

    def test_surgery_payload(self):
        event = make_event(scheduled_at=datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))

        payload = render_reminder(event, _entry_for(event, 15), Urgency.HIGH, "Africa/Lagos", with_voice=True)

        assert payload.title == "\U0001F3E5 Surgery Reminder"
        assert payload.body.split("\n") == [
            "Appendectomy - Ada Obi",
            "in 15 minutes at 10:30 AM",
            "\U0001F4CD Theatre 2",
        ]
        assert payload.tag == "carebridge-surgery-surg-1"
        assert payload.voice_text == (
            "Attention! Surgery reminder. Ada Obi has a appendectomy scheduled in 15 minutes."
        )
        assert payload.data == {
            "type": "surgery",
            "eventId": "surg-1",
            "reminderId": "surg-1-15",
            "patientId": "pat-1",
            "url": "/surgery/surg-1",
        }

    def test_without_location_or_voice(self):
        event = make_event(
            event_id="plan-1-a1",
            kind=EventKind.TREATMENT_ACTIVITY,
            scheduled_at=datetime(2026, 3, 2, 14, 0, tzinfo=timezone.utc),
            location=None,
            title="Dressing change",
        )

        payload = render_reminder(event, _entry_for(event, 60), Urgency.MEDIUM, "UTC", with_voice=False)

        assert payload.body.split("\n") == ["Dressing change - Ada Obi", "in 1 hour at 2:00 PM"]
        assert payload.voice_text is None
        assert payload.require_interaction is False
        assert payload.data["url"] == "/treatment-plans/plan-1-a1"


class TestRenderArtifact:
    """Tests for immediate notice payloads."""

    def test_prescription_lists_three_items(self):
        artifact = ClinicalArtifact(
            kind=ArtifactKind.PRESCRIPTION,
            id="rx-1",
            patient_id="pat-1",
            patient_name="Ada Obi",
            items=["Amoxicillin", "Paracetamol", "Omeprazole", "Metronidazole"],
        )

        payload = render_artifact(artifact, Urgency.MEDIUM, with_voice=True)

        assert payload.body == "4 medications prescribed for Ada Obi\nAmoxicillin, Paracetamol, Omeprazole..."
        assert payload.voice_text == "New prescription. 4 medications prescribed for patient Ada Obi."
        assert payload.tag == "prescription-rx-1"
        assert payload.data["url"] == "/pharmacy/prescriptions/rx-1"

    def test_defaults_fill_missing_fields(self):
        artifact = ClinicalArtifact(
            kind=ArtifactKind.TREATMENT_PLAN,
            id="plan-1",
            patient_id="pat-1",
            patient_name="Ada Obi",
        )

        payload = render_artifact(artifact, Urgency.MEDIUM, with_voice=False)

        assert payload.body == "Treatment plan created for Ada Obi\nView details for more information"
        assert payload.require_interaction is True
        assert payload.tag == "treatment-plan-plan-1"

    def test_investigation_mentions_hospital(self):
        artifact = ClinicalArtifact(
            kind=ArtifactKind.INVESTIGATION,
            id="inv-1",
            patient_id="pat-1",
            patient_name="Ada Obi",
            hospital_name="St. Mary",
            label="Chest X-ray",
        )

        payload = render_artifact(artifact, Urgency.MEDIUM, with_voice=False)

        assert payload.body == "Chest X-ray requested for Ada Obi\nSt. Mary"
        assert payload.require_interaction is False


class TestTimeHelpers:
    """Tests for the time formatting helpers."""

    @pytest.mark.parametrize(
        "minutes, expected",
        [
            (1440, "in 1 day"),
            (2880, "in 2 days"),
            (120, "in 2 hours"),
            (60, "in 1 hour"),
            (30, "in 30 minutes"),
            (1, "in 1 minute"),
        ],
    )
    def test_format_time_until(self, minutes, expected):
        assert format_time_until(minutes) == expected

    def test_local_clock(self):
        instant = datetime(2026, 3, 2, 23, 5, tzinfo=timezone.utc)

        assert format_local_clock(instant, "Africa/Lagos") == "12:05 AM"

    def test_db_string_roundtrip_is_utc(self):
        instant = datetime(2026, 3, 2, 10, 0, tzinfo=timezone(timedelta(hours=1)))

        assert to_db_str(instant) == "2026-03-02 09:00:00"
        assert from_db_str("2026-03-02 09:00:00") == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

"""
Tests for the read-only clinical record source.
"""

from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest
import pytest_asyncio

from datamodel import EventKind, Priority
from sources.clinical import ClinicalRecordSource, project_activity, project_surgery

TZ = "Africa/Lagos"  # UTC+1, no DST

SCHEMA = """
CREATE TABLE patients (id TEXT PRIMARY KEY, first_name TEXT, last_name TEXT);
CREATE TABLE hospitals (id TEXT PRIMARY KEY, name TEXT);
CREATE TABLE surgeries (
    id TEXT PRIMARY KEY, patient_id TEXT, hospital_id TEXT, procedure_name TEXT,
    scheduled_date TEXT, scheduled_time TEXT, operating_room TEXT, surgeon TEXT,
    priority TEXT, status TEXT
);
CREATE TABLE appointments (
    id TEXT PRIMARY KEY, patient_id TEXT, hospital_id TEXT, reason_for_visit TEXT,
    appointment_date TEXT, appointment_time TEXT, department TEXT, clinician_name TEXT,
    priority TEXT, status TEXT
);
CREATE TABLE treatment_plans (
    id TEXT PRIMARY KEY, patient_id TEXT, hospital_id TEXT, treatment_type TEXT,
    priority TEXT, status TEXT
);
CREATE TABLE treatment_activities (
    id TEXT, plan_id TEXT, name TEXT, description TEXT, scheduled_time TEXT, status TEXT,
    PRIMARY KEY (plan_id, id)
);
"""

SEED = """
INSERT INTO patients VALUES ('pat-1', 'Ada', 'Obi');
INSERT INTO hospitals VALUES ('hosp-1', 'St. Mary');

INSERT INTO surgeries VALUES
    ('surg-1', 'pat-1', 'hosp-1', 'Appendectomy', '2026-03-03', '14:30', 'Theatre 2', 'Dr. Eze', 'urgent', 'scheduled'),
    ('surg-2', 'ghost', NULL, NULL, '2026-03-03', NULL, NULL, NULL, NULL, 'confirmed'),
    ('surg-3', 'pat-1', 'hosp-1', 'Hernia repair', '2026-03-03', '10:00', NULL, NULL, NULL, 'cancelled'),
    ('surg-4', 'pat-1', 'hosp-1', 'Biopsy', 'not-a-date', '10:00', NULL, NULL, NULL, 'scheduled');

INSERT INTO appointments VALUES
    ('apt-1', 'pat-1', 'hosp-1', 'Follow-up', '2026-03-02', '16:00', NULL, 'Dr. Bello', NULL, 'scheduled'),
    ('apt-2', 'pat-1', 'hosp-1', 'Review', '2026-03-20', '09:00', 'Cardiology', NULL, NULL, 'scheduled');

INSERT INTO treatment_plans VALUES
    ('plan-1', 'pat-1', 'hosp-1', 'Wound care', 'high', 'active'),
    ('plan-2', 'pat-1', 'hosp-1', 'Physio', NULL, 'completed');

INSERT INTO treatment_activities VALUES
    ('a1', 'plan-1', 'Dressing change', NULL, '2026-03-02T18:00:00Z', 'pending'),
    ('a2', 'plan-1', 'Suture removal', NULL, '2026-03-02T19:00:00Z', 'completed'),
    ('a1', 'plan-2', 'Exercises', NULL, '2026-03-02T18:00:00Z', 'pending');
"""

WINDOW_START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
WINDOW_END = WINDOW_START + timedelta(hours=48)


@pytest_asyncio.fixture
async def clinical_source(tmp_path):
    path = tmp_path / "clinical.db"
    async with aiosqlite.connect(path) as conn:
        await conn.executescript(SCHEMA + SEED)
        await conn.commit()

    source = ClinicalRecordSource(str(path), tz_name=TZ)
    try:
        yield source
    finally:
        await source.close()


class TestProjection:
    """Tests for the pure row projections."""

    def test_surgery_defaults(self):
        row = {
            "id": "s", "patient_id": "p", "hospital_id": None, "procedure_name": None,
            "scheduled_date": "2026-03-03T00:00:00", "scheduled_time": None,
            "operating_room": None, "surgeon": None, "priority": None,
            "first_name": None, "last_name": None, "hospital_name": None,
        }

        event = project_surgery(row, TZ)

        assert event.title == "Scheduled Surgery"
        assert event.patient_name == "Unknown Patient"
        assert event.hospital_name == "Hospital"
        assert event.location == "Theatre"
        assert event.details == "Surgeon: Not assigned"
        assert event.priority == Priority.ROUTINE
        # 08:00 local is 07:00 UTC
        assert event.scheduled_at == datetime(2026, 3, 3, 7, 0, tzinfo=timezone.utc)

    def test_activity_id_and_naive_time(self):
        row = {
            "plan_id": "plan-9", "id": "a-3", "name": None, "description": None,
            "scheduled_time": "2026-03-02T12:00:00", "patient_id": "p", "hospital_id": None,
            "treatment_type": "Chemotherapy", "priority": "emergency",
            "first_name": "Ada", "last_name": None, "hospital_name": None,
        }

        event = project_activity(row, TZ)

        assert event.id == "plan-9-a-3"
        assert event.kind == EventKind.TREATMENT_ACTIVITY
        assert event.title == "Treatment Activity"
        assert event.details == "Chemotherapy"
        assert event.patient_name == "Ada"
        assert event.priority == Priority.EMERGENCY
        assert event.scheduled_at == datetime(2026, 3, 2, 11, 0, tzinfo=timezone.utc)


class TestClinicalRecordSource:
    """Tests against a temporary clinical database."""

    @pytest.mark.asyncio
    async def test_list_upcoming_filters_status_and_window(self, clinical_source):
        events = await clinical_source.list_upcoming(
            (EventKind.SURGERY, EventKind.APPOINTMENT, EventKind.TREATMENT_ACTIVITY),
            WINDOW_START,
            WINDOW_END,
        )

        assert [e.id for e in events] == ["apt-1", "plan-1-a1", "surg-2", "surg-1"]

    @pytest.mark.asyncio
    async def test_list_upcoming_by_kind(self, clinical_source):
        events = await clinical_source.list_upcoming((EventKind.SURGERY,), WINDOW_START, WINDOW_END)

        assert {e.kind for e in events} == {EventKind.SURGERY}
        surgery = next(e for e in events if e.id == "surg-1")
        assert surgery.scheduled_at == datetime(2026, 3, 3, 13, 30, tzinfo=timezone.utc)
        assert surgery.priority == Priority.URGENT
        assert surgery.patient_name == "Ada Obi"
        assert surgery.hospital_name == "St. Mary"

    @pytest.mark.asyncio
    async def test_get_returns_active_events_only(self, clinical_source):
        appointment = await clinical_source.get("apt-1", EventKind.APPOINTMENT)
        activity = await clinical_source.get("plan-1-a1")

        assert appointment.location == "Clinic"
        assert appointment.details == "Doctor: Dr. Bello"
        assert activity.title == "Dressing change"
        assert await clinical_source.get("surg-3") is None
        assert await clinical_source.get("plan-1-a2") is None
        assert await clinical_source.get("plan-2-a1") is None
        assert await clinical_source.get("apt-1", EventKind.SURGERY) is None

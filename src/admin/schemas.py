from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from datamodel import ArtifactKind, ClinicalArtifact, DomainEvent, EventKind, Priority


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    restart_event: asyncio.Event
    started_at: float


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")


class VoicePreference(BaseModel):
    enabled: bool


class ClinicalEventIn(BaseModel):
    """临床模块推送的事件变更 (创建/改期)"""

    id: str
    kind: EventKind
    title: str
    patient_id: str
    patient_name: str = "Unknown Patient"
    hospital_id: Optional[str] = None
    hospital_name: str = "Hospital"
    scheduled_at: datetime  # 必须带时区
    priority: str = "routine"
    location: Optional[str] = None
    details: Optional[str] = None

    def to_domain(self) -> DomainEvent:
        return DomainEvent(
            id=self.id,
            kind=self.kind,
            title=self.title,
            patient_id=self.patient_id,
            patient_name=self.patient_name,
            hospital_id=self.hospital_id,
            hospital_name=self.hospital_name,
            scheduled_at=self.scheduled_at,
            priority=Priority.parse(self.priority),
            location=self.location,
            details=self.details,
        )


class ClinicalArtifactIn(BaseModel):
    kind: ArtifactKind
    id: str
    patient_id: str
    patient_name: str = "Unknown Patient"
    hospital_name: str = "Hospital"
    priority: Optional[str] = None
    label: Optional[str] = None
    items: list[str] = Field(default_factory=list)
    summary: Optional[str] = None
    has_scheduled_activities: bool = False

    def to_domain(self) -> ClinicalArtifact:
        return ClinicalArtifact(
            kind=self.kind,
            id=self.id,
            patient_id=self.patient_id,
            patient_name=self.patient_name,
            hospital_name=self.hospital_name,
            priority=self.priority,
            label=self.label,
            items=list(self.items),
            summary=self.summary,
            has_scheduled_activities=self.has_scheduled_activities,
        )

"""临床记录库 (SQLite) 的只读事件源

临床记录由其他模块维护, 这里只读取以下表 (列名见各 SELECT 语句):
patients, hospitals, surgeries, appointments, treatment_plans, treatment_activities。

手术/门诊的日期和时间按本地时区 (DISPLAY_TIMEZONE) 存储, 活动时间为 ISO 8601,
不带时区时同样按本地时区解释。投影结果统一为 UTC。
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo

import aiosqlite

from config.settings import DISPLAY_TIMEZONE
from datamodel import DomainEvent, EventKind, Priority
from logger import logger
from sources.base import DomainEventSource

__all__ = [
    "ClinicalRecordSource",
    "project_surgery", "project_appointment", "project_activity",
]


DEFAULT_SURGERY_TIME = time(8, 0)
UNKNOWN_PATIENT = "Unknown Patient"
DEFAULT_HOSPITAL = "Hospital"


_SURGERY_SELECT = """
SELECT s.id, s.patient_id, s.hospital_id, s.procedure_name, s.scheduled_date, s.scheduled_time,
       s.operating_room, s.surgeon, s.priority,
       p.first_name, p.last_name, h.name AS hospital_name
FROM surgeries s
LEFT JOIN patients p ON p.id = s.patient_id
LEFT JOIN hospitals h ON h.id = s.hospital_id
WHERE s.status IN ('scheduled', 'confirmed')
"""

_APPOINTMENT_SELECT = """
SELECT a.id, a.patient_id, a.hospital_id, a.reason_for_visit, a.appointment_date, a.appointment_time,
       a.department, a.clinician_name, a.priority,
       p.first_name, p.last_name, h.name AS hospital_name
FROM appointments a
LEFT JOIN patients p ON p.id = a.patient_id
LEFT JOIN hospitals h ON h.id = a.hospital_id
WHERE a.status IN ('scheduled', 'confirmed')
"""

_ACTIVITY_SELECT = """
SELECT t.plan_id, t.id, t.name, t.description, t.scheduled_time,
       pl.patient_id, pl.hospital_id, pl.treatment_type, pl.priority,
       p.first_name, p.last_name, h.name AS hospital_name
FROM treatment_activities t
JOIN treatment_plans pl ON pl.id = t.plan_id
LEFT JOIN patients p ON p.id = pl.patient_id
LEFT JOIN hospitals h ON h.id = pl.hospital_id
WHERE pl.status IN ('active', 'scheduled')
  AND COALESCE(t.status, '') != 'completed'
  AND t.scheduled_time IS NOT NULL
"""


# ----------------- 纯投影函数 ----------------
def _patient_name(row: Mapping[str, Any]) -> str:
    name = " ".join(part for part in (row["first_name"], row["last_name"]) if part)
    return name or UNKNOWN_PATIENT


def _local_to_utc(day: str, clock: Optional[str], tz_name: str, default: Optional[time] = None) -> datetime:
    """把本地日期 (可能带时间部分, 只取日期) 和 "HH:MM" 合成为 UTC 时间"""
    d = date.fromisoformat(str(day)[:10])
    if clock:
        hours, minutes = str(clock).split(":")[:2]
        t = time(int(hours), int(minutes))
    elif default is not None:
        t = default
    else:
        raise ValueError("缺少时间")
    return datetime.combine(d, t, tzinfo=ZoneInfo(tz_name)).astimezone(timezone.utc)


def _parse_instant(raw: str, tz_name: str) -> datetime:
    dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz_name))
    return dt.astimezone(timezone.utc)


def project_surgery(row: Mapping[str, Any], tz_name: str) -> DomainEvent:
    return DomainEvent(
        id=str(row["id"]),
        kind=EventKind.SURGERY,
        title=row["procedure_name"] or "Scheduled Surgery",
        patient_id=str(row["patient_id"]),
        patient_name=_patient_name(row),
        hospital_id=row["hospital_id"],
        hospital_name=row["hospital_name"] or DEFAULT_HOSPITAL,
        scheduled_at=_local_to_utc(row["scheduled_date"], row["scheduled_time"], tz_name, DEFAULT_SURGERY_TIME),
        priority=Priority.parse(row["priority"]),
        location=row["operating_room"] or "Theatre",
        details=f"Surgeon: {row['surgeon'] or 'Not assigned'}",
    )


def project_appointment(row: Mapping[str, Any], tz_name: str) -> DomainEvent:
    return DomainEvent(
        id=str(row["id"]),
        kind=EventKind.APPOINTMENT,
        title=row["reason_for_visit"] or "Appointment",
        patient_id=str(row["patient_id"]),
        patient_name=_patient_name(row),
        hospital_id=row["hospital_id"],
        hospital_name=row["hospital_name"] or DEFAULT_HOSPITAL,
        scheduled_at=_local_to_utc(row["appointment_date"], row["appointment_time"], tz_name),
        priority=Priority.parse(row["priority"]),
        location=row["department"] or "Clinic",
        details=f"Doctor: {row['clinician_name'] or 'Not assigned'}",
    )


def project_activity(row: Mapping[str, Any], tz_name: str) -> DomainEvent:
    return DomainEvent(
        id=f"{row['plan_id']}-{row['id']}",
        kind=EventKind.TREATMENT_ACTIVITY,
        title=row["name"] or "Treatment Activity",
        patient_id=str(row["patient_id"]),
        patient_name=_patient_name(row),
        hospital_id=row["hospital_id"],
        hospital_name=row["hospital_name"] or DEFAULT_HOSPITAL,
        scheduled_at=_parse_instant(row["scheduled_time"], tz_name),
        priority=Priority.parse(row["priority"]),
        details=row["description"] or row["treatment_type"] or "Scheduled treatment",
    )


class ClinicalRecordSource(DomainEventSource):
    def __init__(self, db_path: str, tz_name: str = DISPLAY_TIMEZONE) -> None:
        self.db_path = db_path
        self.tz_name = tz_name
        self._conn: aiosqlite.Connection | None = None

    async def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._conn = await aiosqlite.connect(f"file:{self.db_path}?mode=ro", uri=True)
            self._conn.row_factory = aiosqlite.Row
            logger.info(f"已以只读方式打开临床记录库: {self.db_path}")
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def _fetch(self, sql: str, params: tuple = ()) -> list[aiosqlite.Row]:
        conn = await self._connection()
        async with conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    def _project_rows(self, rows: Iterable[Mapping[str, Any]], projector) -> list[DomainEvent]:
        events: list[DomainEvent] = []
        for row in rows:
            try:
                events.append(projector(row, self.tz_name))
            except (ValueError, TypeError) as e:
                # 日期时间写坏的记录不影响其他记录
                logger.warning(f"跳过无法解析的临床记录: id={row['id']}, error={e}")
        return events

    async def list_upcoming(
        self,
        kinds: Iterable[EventKind],
        window_start: datetime,
        window_end: datetime,
    ) -> list[DomainEvent]:
        wanted = set(kinds)
        # 本地日期与 UTC 最多差一天, 先按日期粗筛, 再按精确时刻过滤
        first_day = (window_start - timedelta(days=1)).date().isoformat()
        last_day = (window_end + timedelta(days=1)).date().isoformat()

        events: list[DomainEvent] = []
        if EventKind.SURGERY in wanted:
            rows = await self._fetch(
                _SURGERY_SELECT + " AND substr(s.scheduled_date, 1, 10) BETWEEN ? AND ?", (first_day, last_day)
            )
            events.extend(self._project_rows(rows, project_surgery))
        if EventKind.APPOINTMENT in wanted:
            rows = await self._fetch(
                _APPOINTMENT_SELECT + " AND substr(a.appointment_date, 1, 10) BETWEEN ? AND ?", (first_day, last_day)
            )
            events.extend(self._project_rows(rows, project_appointment))
        if EventKind.TREATMENT_ACTIVITY in wanted:
            rows = await self._fetch(
                _ACTIVITY_SELECT + " AND substr(t.scheduled_time, 1, 10) BETWEEN ? AND ?", (first_day, last_day)
            )
            events.extend(self._project_rows(rows, project_activity))

        events = [e for e in events if window_start <= e.scheduled_at <= window_end]
        logger.debug(f"临床记录库返回 {len(events)} 个即将发生的事件")
        return sorted(events, key=lambda e: e.scheduled_at)

    async def get(self, event_id: str, kind: Optional[EventKind] = None) -> Optional[DomainEvent]:
        """按 id 查找仍然有效的事件, 已取消/已完成的返回 None"""
        lookups = (
            (EventKind.SURGERY, _SURGERY_SELECT + " AND s.id = ?", project_surgery),
            (EventKind.APPOINTMENT, _APPOINTMENT_SELECT + " AND a.id = ?", project_appointment),
            # 活动 id 由计划 id 与活动 id 拼接, 两者都可能含 "-", 直接按拼接结果匹配
            (EventKind.TREATMENT_ACTIVITY, _ACTIVITY_SELECT + " AND (t.plan_id || '-' || t.id) = ?", project_activity),
        )
        for lookup_kind, sql, projector in lookups:
            if kind is not None and kind != lookup_kind:
                continue
            rows = await self._fetch(sql, (event_id,))
            events = self._project_rows(rows, projector)
            if events:
                return events[0]
        return None

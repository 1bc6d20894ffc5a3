from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
from datetime import datetime

__all__ = [
    "EventKind", "Priority", "DomainEvent",
    "ReminderStatus", "ChannelHint", "ReminderEntry",
    "Urgency", "NotificationPayload", "DeliveryResult",
    "ArtifactKind", "ClinicalArtifact",
]

# ----------------- 临床事件 (只读投影) ----------------
class EventKind(str, Enum):
    SURGERY = "surgery"
    APPOINTMENT = "appointment"
    TREATMENT_ACTIVITY = "treatment_activity"


class Priority(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENCY = "emergency"

    @classmethod
    def parse(cls, raw: Any) -> "Priority":
        """临床记录里的优先级写法不统一, 无法识别时按 routine 处理"""
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.ROUTINE


@dataclass(frozen=True)
class DomainEvent:
    id: str
    kind: EventKind
    title: str
    patient_id: str
    patient_name: str
    hospital_id: Optional[str]
    hospital_name: str
    scheduled_at: datetime  # 带时区, UTC
    priority: Priority = Priority.ROUTINE
    offset_policy: Tuple[int, ...] = ()  # 提前多少分钟提醒, 降序
    location: Optional[str] = None
    details: Optional[str] = None


# ----------------- 提醒条目 (持久化单元) ----------------
class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ChannelHint(str, Enum):
    VISUAL = "visual"
    VOICE_VISUAL = "voice+visual"

    @property
    def includes_voice(self) -> bool:
        return self is ChannelHint.VOICE_VISUAL


@dataclass
class ReminderEntry:
    id: str  # f"{event_id}-{offset_minutes}"
    event_id: str
    event_kind: EventKind
    scheduled_for: datetime  # 带时区, UTC
    offset_minutes: int
    channel_hint: ChannelHint
    status: ReminderStatus = ReminderStatus.PENDING
    sent_at: Optional[datetime] = None
    voice_played: bool = False
    failure_reason: Optional[str] = None

    @staticmethod
    def make_id(event_id: str, offset_minutes: int) -> str:
        return f"{event_id}-{offset_minutes}"


# ----------------- 投递 ----------------
class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class NotificationPayload:
    title: str
    body: str
    tag: str
    urgency: Urgency
    voice_text: Optional[str] = None
    require_interaction: bool = False
    data: Dict[str, Any] = field(default_factory=dict)  # 宿主点击通知时的跳转信息等


@dataclass
class DeliveryResult:
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "DeliveryResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, reason: str) -> "DeliveryResult":
        return cls(ok=False, reason=reason)


# ----------------- 即时通知的临床产物 ----------------
class ArtifactKind(str, Enum):
    INVESTIGATION = "investigation"
    LAB_ORDER = "lab_order"
    PRESCRIPTION = "prescription"
    TREATMENT_PLAN = "treatment_plan"
    INVESTIGATION_RESULT = "investigation_result"
    LAB_RESULT = "lab_result"
    PRESCRIPTION_READY = "prescription_ready"


@dataclass
class ClinicalArtifact:
    kind: ArtifactKind
    id: str
    patient_id: str
    patient_name: str
    hospital_name: str = "Hospital"
    priority: Optional[str] = None  # 原始字段: routine/urgent/stat/high ...
    label: Optional[str] = None  # 检查类型 / 治疗类型
    items: List[str] = field(default_factory=list)  # 检验项目或药品名
    summary: Optional[str] = None  # 例如治疗计划的诊断
    has_scheduled_activities: bool = False

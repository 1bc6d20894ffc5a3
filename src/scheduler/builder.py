"""根据临床事件计算提醒时刻

纯函数, 不读写存储。触发时刻早于或等于构建时刻的偏移直接丢弃, 不会记为 "错过"。
"""

from datetime import datetime, timedelta

from datamodel import ChannelHint, DomainEvent, EventKind, ReminderEntry, ReminderStatus
from utils import ensure_utc

__all__ = ["OFFSET_POLICIES", "offset_policy_for", "channel_hint_for", "build"]

# 提前多少分钟提醒
OFFSET_POLICIES: dict[EventKind, tuple[int, ...]] = {
    EventKind.SURGERY: (1440, 120, 60, 30, 15, 5),
    EventKind.APPOINTMENT: (1440, 120, 30, 15),
    EventKind.TREATMENT_ACTIVITY: (60, 30, 15),
}

# 偏移不超过该值时追加语音
_VOICE_THRESHOLD_MINUTES: dict[EventKind, int] = {
    EventKind.SURGERY: 120,
    EventKind.APPOINTMENT: 120,
    EventKind.TREATMENT_ACTIVITY: 30,
}


def offset_policy_for(kind: EventKind) -> tuple[int, ...]:
    return OFFSET_POLICIES[kind]


def channel_hint_for(kind: EventKind, offset_minutes: int) -> ChannelHint:
    if offset_minutes <= _VOICE_THRESHOLD_MINUTES[kind]:
        return ChannelHint.VOICE_VISUAL
    return ChannelHint.VISUAL


def build(event: DomainEvent, now: datetime) -> list[ReminderEntry]:
    now = ensure_utc(now)
    # 存储精度为秒, 这里先截断, 保证重建前后的触发时刻可以直接比较
    scheduled_at = ensure_utc(event.scheduled_at).replace(microsecond=0)
    policy = event.offset_policy or offset_policy_for(event.kind)

    entries: list[ReminderEntry] = []
    for offset in sorted(set(policy), reverse=True):
        scheduled_for = scheduled_at - timedelta(minutes=offset)
        if scheduled_for <= now:
            continue
        entries.append(ReminderEntry(
            id=ReminderEntry.make_id(event.id, offset),
            event_id=event.id,
            event_kind=event.kind,
            scheduled_for=scheduled_for,
            offset_minutes=offset,
            channel_hint=channel_hint_for(event.kind, offset),
            status=ReminderStatus.PENDING,
        ))
    return entries

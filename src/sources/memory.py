from datetime import datetime, timedelta
from typing import Iterable, Optional

from datamodel import DomainEvent, EventKind
from logger import logger
from sources.base import DomainEventSource

__all__ = ["InMemoryEventSource"]

# 事件时刻早于窗口起点超过该时长即视为已结束, 从内存中移除
PRUNE_GRACE = timedelta(hours=1)


class InMemoryEventSource(DomainEventSource):
    """字典实现, 用于测试和未接入临床记录库时的空跑"""

    def __init__(self, events: Iterable[DomainEvent] = ()) -> None:
        self._events: dict[str, DomainEvent] = {e.id: e for e in events}

    def put(self, event: DomainEvent) -> None:
        self._events[event.id] = event

    def remove(self, event_id: str) -> None:
        self._events.pop(event_id, None)

    def _prune(self, before: datetime) -> None:
        expired = [event_id for event_id, e in self._events.items() if e.scheduled_at < before]
        for event_id in expired:
            del self._events[event_id]
        if expired:
            logger.debug(f"内存事件源移除已结束事件 {len(expired)} 个")

    async def list_upcoming(
        self,
        kinds: Iterable[EventKind],
        window_start: datetime,
        window_end: datetime,
    ) -> list[DomainEvent]:
        self._prune(window_start - PRUNE_GRACE)
        wanted = set(kinds)
        events = [
            e for e in self._events.values()
            if e.kind in wanted and window_start <= e.scheduled_at <= window_end
        ]
        logger.trace(f"内存事件源返回 {len(events)} 个事件")
        return sorted(events, key=lambda e: e.scheduled_at)

    async def get(self, event_id: str, kind: Optional[EventKind] = None) -> Optional[DomainEvent]:
        event = self._events.get(event_id)
        if event is None or (kind is not None and event.kind != kind):
            return None
        return event

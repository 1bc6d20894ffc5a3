from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from datamodel import DomainEvent, EventKind

__all__ = ["DomainEventSource", "ALL_EVENT_KINDS"]

ALL_EVENT_KINDS: tuple[EventKind, ...] = (
    EventKind.SURGERY,
    EventKind.APPOINTMENT,
    EventKind.TREATMENT_ACTIVITY,
)


class DomainEventSource(ABC):
    """临床记录的只读视图, 每次调用都返回新的 DomainEvent"""

    @abstractmethod
    async def list_upcoming(
        self,
        kinds: Iterable[EventKind],
        window_start: datetime,
        window_end: datetime,
    ) -> list[DomainEvent]:
        pass

    @abstractmethod
    async def get(self, event_id: str, kind: Optional[EventKind] = None) -> Optional[DomainEvent]:
        pass

    def put(self, event: DomainEvent) -> None:
        """记录经由总线或 API 推送的事件; 由所属模块维护数据的源忽略即可"""

    def remove(self, event_id: str) -> None:
        pass

    async def close(self) -> None:
        pass

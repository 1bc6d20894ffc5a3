"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

临床模块 (手术/门诊/治疗计划) 在事件创建、改期、取消时向总线发事件，
调度器订阅这些事件完成单事件重建或删除；调度器的写入、投递结果和桥接连接状态也会广播出去，供展示调度状态的界面订阅。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Awaitable, Callable

from logger import logger

AsyncHandler = Callable[..., Awaitable[None]]

# 事件名集中定义
class E:
    CLINICAL_EVENT_CHANGED = "clinical_event.changed"      # 参数: event: DomainEvent
    CLINICAL_EVENT_CANCELLED = "clinical_event.cancelled"  # 参数: event_id: str
    REMINDER_SCHEDULED = "reminder.scheduled"
    REMINDER_SENT = "reminder.sent"
    REMINDER_FAILED = "reminder.failed"
    BRIDGE_CONNECTED = "bridge.connected"
    BRIDGE_DISCONNECTED = "bridge.disconnected"


class Bus(AsyncIOEventEmitter):
    def on(self, event: str) -> Callable[[AsyncHandler], AsyncHandler]:
        """注册事件处理器装饰器"""
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            logger.debug(f"注册事件处理器: {event} -> {handler.__name__}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "E"]

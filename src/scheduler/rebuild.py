"""重建循环

启动时立即执行一次, 之后按固定间隔从临床记录重新拉取前瞻窗口内的事件,
逐个事件整体替换其提醒条目, 最后清理保留期之外的已完成条目。
临床模块在事件创建/改期时走 rebuild_event, 取消时走 cancel_event (只删除, 不重建)。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import storage.reminder as reminder_storage
from config.settings import LOOKAHEAD_HOURS, REBUILD_INTERVAL_SECONDS, RETENTION_HOURS
from datamodel import DomainEvent, EventKind
from events import bus, E
from logger import component_logger
from metrics import runtime_metrics
from scheduler.builder import build
from sources.base import ALL_EVENT_KINDS, DomainEventSource
from utils import now_utc

logger = component_logger("rebuild")

__all__ = ["Rebuilder", "RebuildReport", "configure_rebuilder", "get_rebuilder", "require_rebuilder"]


@dataclass
class RebuildReport:
    events: int = 0
    written: int = 0
    cleaned: int = 0
    errors: list[str] = field(default_factory=list)


class Rebuilder:
    def __init__(
        self,
        source: DomainEventSource,
        lookahead_hours: float = LOOKAHEAD_HOURS,
        retention_hours: float = RETENTION_HOURS,
    ) -> None:
        self.source = source
        self.lookahead = timedelta(hours=lookahead_hours)
        self.retention = timedelta(hours=retention_hours)
        self._running = False
        self._last_rebuild_at: datetime | None = None

    def get_status(self) -> dict[str, object]:
        return {
            "running": self._running,
            "last_rebuild_at_utc": self._last_rebuild_at.isoformat() if self._last_rebuild_at else None,
        }

    async def rebuild_event(self, event: DomainEvent, now: datetime | None = None) -> int:
        """重新计算单个事件的提醒并整体替换, 返回写入条数"""
        now = now or now_utc()
        self.source.put(event)
        entries = build(event, now)
        written = await reminder_storage.replace_for_event(event.id, entries)
        logger.trace(f"事件 {event.id} ({event.kind.value}) 可用提醒 {len(entries)} 条, 写入 {written} 条")
        return written

    async def cancel_event(self, event_id: str) -> int:
        self.source.remove(event_id)
        deleted = await reminder_storage.delete_for_event(event_id)
        logger.info(f"事件 {event_id} 已取消, 删除提醒 {deleted} 条")
        return deleted

    async def rebuild_all(self, now: datetime | None = None) -> RebuildReport:
        now = now or now_utc()
        report = RebuildReport()

        try:
            events = await self.source.list_upcoming(ALL_EVENT_KINDS, now, now + self.lookahead)
        except Exception as e:
            logger.opt(exception=e).error(f"拉取临床事件失败, 等待下次重建: {e}")
            report.errors.append(str(e))
            runtime_metrics.record_rebuild(error=True)
            return report

        report.events = len(events)
        for event in events:
            try:
                report.written += await self.rebuild_event(event, now)
            except Exception as e:
                logger.opt(exception=e).error(f"重建事件 {event.id} 的提醒失败: {e}")
                report.errors.append(f"{event.id}: {e}")

        try:
            report.cleaned = await reminder_storage.cleanup(now - self.retention)
        except Exception as e:
            logger.opt(exception=e).error(f"清理过期提醒失败: {e}")
            report.errors.append(f"cleanup: {e}")

        self._last_rebuild_at = now
        runtime_metrics.record_rebuild(error=bool(report.errors))
        logger.info(f"提醒重建完成: 事件 {report.events} 个, 写入 {report.written} 条, 清理 {report.cleaned} 条")
        return report

    async def reschedule_treatment_plan(self, plan_id: str, now: datetime | None = None) -> int:
        """重建某个治疗计划下所有即将进行的活动"""
        now = now or now_utc()
        events = await self.source.list_upcoming((EventKind.TREATMENT_ACTIVITY,), now, now + self.lookahead)
        written = 0
        for event in events:
            if event.id.startswith(f"{plan_id}-"):
                written += await self.rebuild_event(event, now)
        return written

    async def run_loop(self, shutdown_event: asyncio.Event, interval: float = REBUILD_INTERVAL_SECONDS) -> None:
        self._running = True
        logger.info(f"提醒重建循环已启动, 间隔 {interval:g}s")
        try:
            while not shutdown_event.is_set():
                try:
                    await self.rebuild_all()
                except Exception as e:
                    logger.opt(exception=e).error(f"提醒重建异常: {e}")
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("提醒重建循环已关闭")


_rebuilder: Rebuilder | None = None

def configure_rebuilder(rebuilder: Rebuilder) -> None:
    global _rebuilder
    _rebuilder = rebuilder


def get_rebuilder() -> Rebuilder | None:
    return _rebuilder


def require_rebuilder() -> Rebuilder:
    if _rebuilder is None:
        raise RuntimeError("Rebuilder 尚未配置，请先调用 configure_rebuilder()")
    return _rebuilder


@bus.on(E.CLINICAL_EVENT_CHANGED)
async def on_clinical_event_changed(event: DomainEvent) -> None:
    """临床模块创建或改期 (时间、优先级) 事件后立即重建其提醒"""
    if _rebuilder is None:
        logger.warning(f"Rebuilder 未配置, 忽略事件变更: {event.id}")
        return
    try:
        await _rebuilder.rebuild_event(event)
    except Exception as e:
        logger.opt(exception=e).error(f"事件 {event.id} 变更后重建提醒失败: {e}")


@bus.on(E.CLINICAL_EVENT_CANCELLED)
async def on_clinical_event_cancelled(event_id: str) -> None:
    if _rebuilder is None:
        logger.warning(f"Rebuilder 未配置, 忽略事件取消: {event_id}")
        return
    try:
        await _rebuilder.cancel_event(event_id)
    except Exception as e:
        logger.opt(exception=e).error(f"事件 {event_id} 取消后删除提醒失败: {e}")

"""投递循环 (Ticker)

每个节拍: 取出到期条目 -> 逐条解析事件并渲染 -> 投递 -> 记录结果。
定时循环与桥接触发的节拍共用一把锁, 同一时刻只有一个节拍在跑；
配合 mark_result 的条件更新, 同一条目不会被投递两次。
投递失败是终态, 不重试: 提醒的意义在于 "事件前 N 分钟", 错过之后再补发没有意义。
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime

import aiosqlite
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

import storage.preferences as preferences
import storage.reminder as reminder_storage
from config.settings import DISPATCH_INTERVAL_SECONDS, DISPLAY_TIMEZONE, NOTIFIER_TIMEOUT_SECONDS, VOICE_ALERTS_DEFAULT
from datamodel import *
from events import bus, E
from logger import component_logger
from metrics import runtime_metrics
from notifier.base import Notifier, deliver_payload
from scheduler.formatter import render_reminder
from scheduler.urgency import compute_urgency
from sources.base import DomainEventSource
from utils import now_utc

logger = component_logger("dispatcher")

RECORD_ATTEMPTS = 3

__all__ = ["Dispatcher", "TickReport", "configure_dispatcher", "require_dispatcher"]


@dataclass
class TickReport:
    due: int = 0
    sent: int = 0
    failed: int = 0
    stale: int = 0
    skipped: int = 0  # 条目在投递期间被删除或已由其他路径完成
    errors: list[str] = field(default_factory=list)


def _log_record_retry(retry_state) -> None:
    logger.warning(
        f"记录投递结果失败, 第 {retry_state.attempt_number} 次尝试: {retry_state.outcome.exception()}"
    )


@retry(
    retry=retry_if_exception_type(aiosqlite.Error),
    stop=stop_after_attempt(RECORD_ATTEMPTS),
    wait=wait_exponential(multiplier=0.1, max=2.0),
    before_sleep=_log_record_retry,
    reraise=True,
)
async def _record_result(
    entry_id: str,
    status: ReminderStatus,
    failure_reason: str | None = None,
    voice_played: bool = False,
) -> bool:
    """存储瞬时故障时只重试结果写入, 不重新投递"""
    return await reminder_storage.mark_result(entry_id, status, failure_reason=failure_reason, voice_played=voice_played)


class Dispatcher:
    def __init__(
        self,
        source: DomainEventSource,
        notifier: Notifier,
        tz_name: str = DISPLAY_TIMEZONE,
        notifier_timeout: float = NOTIFIER_TIMEOUT_SECONDS,
    ) -> None:
        self.source = source
        self.notifier = notifier
        self.tz_name = tz_name
        self.notifier_timeout = notifier_timeout
        self._tick_lock = asyncio.Lock()
        self._running = False
        self._last_tick_at: float | None = None

    def get_status(self) -> dict[str, object]:
        return {
            "running": self._running,
            "ticking": self._tick_lock.locked(),
            "last_tick_at_epoch": self._last_tick_at,
        }

    async def _voice_enabled(self) -> bool:
        try:
            return await preferences.is_voice_enabled()
        except Exception as e:
            logger.warning(f"读取语音开关失败, 使用默认值 {VOICE_ALERTS_DEFAULT}: {e}")
            return VOICE_ALERTS_DEFAULT

    async def tick(self, now: datetime | None = None) -> TickReport:
        async with self._tick_lock:
            now = now or now_utc()
            report = TickReport()
            self._last_tick_at = time.time()

            try:
                due = await reminder_storage.due_entries(now)
            except Exception as e:
                logger.opt(exception=e).error(f"读取到期提醒失败, 等待下个节拍: {e}")
                report.errors.append(str(e))
                runtime_metrics.record_tick(error=True)
                return report

            report.due = len(due)
            if not due:
                runtime_metrics.record_tick()
                return report

            logger.debug(f"本次节拍到期提醒 {len(due)} 条")
            voice_enabled = await self._voice_enabled()

            for entry in due:
                try:
                    await self._dispatch_entry(entry, voice_enabled, report)
                except Exception as e:
                    # 条目保持 pending, 下个节拍再处理
                    logger.opt(exception=e).error(f"处理提醒 {entry.id} 时发生异常: {e}")
                    report.errors.append(f"{entry.id}: {e}")

            runtime_metrics.record_tick(error=bool(report.errors))
            return report

    async def _dispatch_entry(self, entry: ReminderEntry, voice_enabled: bool, report: TickReport) -> None:
        log = logger.bind(reminder_id=entry.id, event_id=entry.event_id)
        event = await self.source.get(entry.event_id, entry.event_kind)
        if event is None:
            # 事件已删除或已完成: 直接结束该条目, 避免孤儿条目反复到期
            if await _record_result(entry.id, ReminderStatus.SENT):
                report.stale += 1
                runtime_metrics.record_reminder(sent=True, stale=True)
            else:
                report.skipped += 1
            log.info(f"提醒 {entry.id} 对应的事件已不存在, 不再投递")
            return

        urgency = compute_urgency(entry.offset_minutes, event.priority)
        with_voice = entry.channel_hint.includes_voice and voice_enabled
        payload = render_reminder(event, entry, urgency, self.tz_name, with_voice)

        result = await deliver_payload(self.notifier, payload, self.notifier_timeout)

        if not result.visual.ok:
            reason = result.visual.reason or "delivery failed"
            changed = await _record_result(entry.id, ReminderStatus.FAILED, failure_reason=reason)
            if changed:
                report.failed += 1
                runtime_metrics.record_reminder(sent=False)
                bus.emit(E.REMINDER_FAILED, entry_id=entry.id, event_id=entry.event_id, reason=reason)
            else:
                report.skipped += 1
            log.warning(f"提醒投递失败: id={entry.id}, reason={reason}")
            return

        voice_reason = f"voice: {result.voice_error}" if result.voice_error else None
        changed = await _record_result(
            entry.id,
            ReminderStatus.SENT,
            failure_reason=voice_reason,
            voice_played=result.voice_played,
        )
        if changed:
            report.sent += 1
            runtime_metrics.record_reminder(sent=True, voice_played=result.voice_played)
            bus.emit(E.REMINDER_SENT, entry_id=entry.id, event_id=entry.event_id, voice_played=result.voice_played)
        else:
            report.skipped += 1
        log.info(
            f"提醒已投递: id={entry.id}, urgency={urgency.value}, voice_played={result.voice_played}"
            + (f", {voice_reason}" if voice_reason else "")
        )

    async def run_loop(self, shutdown_event: asyncio.Event, interval: float = DISPATCH_INTERVAL_SECONDS) -> None:
        self._running = True
        logger.info(f"提醒投递循环已启动, 间隔 {interval:g}s")
        try:
            while not shutdown_event.is_set():
                try:
                    await self.tick()
                except Exception as e:
                    logger.opt(exception=e).error(f"投递节拍异常: {e}")
                try:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("提醒投递循环已关闭")


_dispatcher: Dispatcher | None = None

def configure_dispatcher(dispatcher: Dispatcher) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def require_dispatcher() -> Dispatcher:
    if _dispatcher is None:
        raise RuntimeError("Dispatcher 尚未配置，请先调用 configure_dispatcher()")
    return _dispatcher

"""
运行时指标，统计调度器的节拍、投递结果和重建次数，供 Admin API 展示。
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RuntimeMetrics:
    tick_count: int = 0
    tick_error_count: int = 0
    reminder_sent_count: int = 0
    reminder_failed_count: int = 0
    reminder_stale_count: int = 0
    voice_played_count: int = 0
    rebuild_count: int = 0
    rebuild_error_count: int = 0
    immediate_sent_count: int = 0
    immediate_failed_count: int = 0
    bridge_command_count: int = 0
    last_tick_at: float | None = None
    last_rebuild_at: float | None = None

    def record_tick(self, error: bool = False) -> None:
        self.tick_count += 1
        self.last_tick_at = time.time()
        if error:
            self.tick_error_count += 1

    def record_reminder(self, sent: bool, stale: bool = False, voice_played: bool = False) -> None:
        if stale:
            self.reminder_stale_count += 1
        elif sent:
            self.reminder_sent_count += 1
        else:
            self.reminder_failed_count += 1
        if voice_played:
            self.voice_played_count += 1

    def record_rebuild(self, error: bool = False) -> None:
        self.rebuild_count += 1
        self.last_rebuild_at = time.time()
        if error:
            self.rebuild_error_count += 1

    def record_immediate(self, ok: bool) -> None:
        if ok:
            self.immediate_sent_count += 1
        else:
            self.immediate_failed_count += 1

    def record_bridge_command(self) -> None:
        self.bridge_command_count += 1

    def snapshot(self) -> dict:
        def _fmt(epoch: float | None) -> str | None:
            if epoch is None:
                return None
            return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(epoch))

        return {
            "tick_count": self.tick_count,
            "tick_error_count": self.tick_error_count,
            "reminder_sent_count": self.reminder_sent_count,
            "reminder_failed_count": self.reminder_failed_count,
            "reminder_stale_count": self.reminder_stale_count,
            "voice_played_count": self.voice_played_count,
            "rebuild_count": self.rebuild_count,
            "rebuild_error_count": self.rebuild_error_count,
            "immediate_sent_count": self.immediate_sent_count,
            "immediate_failed_count": self.immediate_failed_count,
            "bridge_command_count": self.bridge_command_count,
            "last_tick_at_utc": _fmt(self.last_tick_at),
            "last_rebuild_at_utc": _fmt(self.last_rebuild_at),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]

"""提醒条目的持久化存储

所有写操作都经过同一把 asyncio.Lock (单写者)，因此 replace_for_event 的 "先删后插" 对其他写者是原子的；
读操作不加锁，最多读到替换前或替换后的状态。
状态只能由 mark_result 从 pending 迁移到 sent/failed，迁移是带条件的 UPDATE (compare-and-set)。
"""

from datetime import datetime, timedelta
from typing import Iterable

import storage.db_config as db_config
from config.settings import DUE_SLACK_SECONDS
from datamodel import *
from events import bus, E
from logger import logger
from utils import from_db_str, now_utc, to_db_str

_COLUMNS = (
    "id, event_id, event_kind, scheduled_for_utc, offset_minutes, channel_hint, "
    "status, sent_at_utc, voice_played, failure_reason"
)


def _ensure_conn():
    if db_config.conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")


def _row_to_entry(row) -> ReminderEntry:
    return ReminderEntry(
        id=row[0],
        event_id=row[1],
        event_kind=EventKind(row[2]),
        scheduled_for=from_db_str(row[3]),
        offset_minutes=row[4],
        channel_hint=ChannelHint(row[5]),
        status=ReminderStatus(row[6]),
        sent_at=from_db_str(row[7]),
        voice_played=bool(row[8]),
        failure_reason=row[9],
    )


def _entry_params(entry: ReminderEntry) -> tuple:
    return (
        entry.id,
        entry.event_id,
        entry.event_kind.value,
        to_db_str(entry.scheduled_for),
        entry.offset_minutes,
        entry.channel_hint.value,
        entry.status.value,
        to_db_str(entry.sent_at) if entry.sent_at else None,
        int(entry.voice_played),
        entry.failure_reason,
    )


def _signature(entry: ReminderEntry) -> tuple:
    return (entry.id, to_db_str(entry.scheduled_for), entry.offset_minutes, entry.channel_hint)


async def _insert_or_replace(entry: ReminderEntry) -> None:
    await db_config.conn.execute(
        f"INSERT OR REPLACE INTO reminder_entries ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        _entry_params(entry),
    )


async def _select(sql: str, params: tuple = ()) -> list[ReminderEntry]:
    _ensure_conn()
    async with db_config.conn.execute(f"SELECT {_COLUMNS} FROM reminder_entries {sql}", params) as cursor:
        rows = await cursor.fetchall()
        return [_row_to_entry(row) for row in rows]


async def upsert(entry: ReminderEntry) -> None:
    """按 id 插入或覆盖"""
    _ensure_conn()
    async with db_config.write_lock:
        await _insert_or_replace(entry)
        await db_config.conn.commit()
    logger.trace(f"写入提醒条目: id={entry.id}, scheduled_for={entry.scheduled_for}, status={entry.status.value}")


async def get_entry(entry_id: str) -> ReminderEntry | None:
    entries = await _select("WHERE id = ?", (entry_id,))
    return entries[0] if entries else None


async def list_for_event(event_id: str) -> list[ReminderEntry]:
    return await _select("WHERE event_id = ? ORDER BY scheduled_for_utc", (event_id,))


async def replace_for_event(event_id: str, entries: Iterable[ReminderEntry]) -> int:
    """用新的一组条目整体替换某个事件的提醒，返回实际写入的条数

    已完成 (sent/failed) 且 id 与触发时刻都与新条目一致的记录会原样保留，对应的新条目不再插入，
    否则同一时刻会被重新置为 pending 而投递两次。
    新旧 pending 集合完全一致时不做任何写入。
    """
    _ensure_conn()
    new_entries = list(entries)
    for entry in new_entries:
        if entry.event_id != event_id:
            raise ValueError(f"条目 {entry.id} 不属于事件 {event_id}")

    async with db_config.write_lock:
        existing = await list_for_event(event_id)
        new_by_id = {e.id: e for e in new_entries}

        kept_ids = {
            e.id for e in existing
            if e.status != ReminderStatus.PENDING
            and e.id in new_by_id
            and to_db_str(new_by_id[e.id].scheduled_for) == to_db_str(e.scheduled_for)
        }
        to_insert = [e for e in new_entries if e.id not in kept_ids]
        to_delete = [e for e in existing if e.id not in kept_ids]

        if (
            all(e.status == ReminderStatus.PENDING for e in to_delete)
            and {_signature(e) for e in to_delete} == {_signature(e) for e in to_insert}
        ):
            logger.trace(f"事件 {event_id} 的提醒未变化, 跳过重建")
            return 0

        try:
            if kept_ids:
                placeholders = ", ".join("?" for _ in kept_ids)
                await db_config.conn.execute(
                    f"DELETE FROM reminder_entries WHERE event_id = ? AND id NOT IN ({placeholders})",
                    (event_id, *sorted(kept_ids)),
                )
            else:
                await db_config.conn.execute("DELETE FROM reminder_entries WHERE event_id = ?", (event_id,))
            for entry in to_insert:
                await _insert_or_replace(entry)
            await db_config.conn.commit()
        except Exception:
            await db_config.conn.rollback()
            raise

    logger.debug(f"重建事件 {event_id} 的提醒: 删除 {len(to_delete)} 条, 写入 {len(to_insert)} 条, 保留已完成 {len(kept_ids)} 条")
    if to_insert:
        bus.emit(E.REMINDER_SCHEDULED, event_id=event_id, count=len(to_insert))
    return len(to_insert)


async def due_entries(now: datetime | None = None, slack_seconds: float = DUE_SLACK_SECONDS) -> list[ReminderEntry]:
    """所有 pending 且触发时刻不晚于 now + slack 的条目, 按触发时刻排序"""
    now = now or now_utc()
    horizon = now + timedelta(seconds=slack_seconds)
    return await _select(
        "WHERE status = 'pending' AND scheduled_for_utc <= ? ORDER BY scheduled_for_utc",
        (to_db_str(horizon),),
    )


async def mark_result(
    entry_id: str,
    status: ReminderStatus,
    failure_reason: str | None = None,
    voice_played: bool = False,
    at: datetime | None = None,
) -> bool:
    """把条目从 pending 迁移到 sent/failed

    条目已被删除或已经完成时不做任何修改并返回 False。
    """
    if status == ReminderStatus.PENDING:
        raise ValueError("mark_result 只能把条目迁移到 sent 或 failed")
    _ensure_conn()
    completed_at = to_db_str(at or now_utc())
    async with db_config.write_lock:
        cursor = await db_config.conn.execute(
            "UPDATE reminder_entries SET status = ?, sent_at_utc = ?, voice_played = ?, failure_reason = ?, "
            "updated_at_utc = CURRENT_TIMESTAMP WHERE id = ? AND status = 'pending'",
            (status.value, completed_at, int(voice_played), failure_reason, entry_id),
        )
        changed = cursor.rowcount
        await cursor.close()
        await db_config.conn.commit()

    if changed == 0:
        logger.debug(f"条目 {entry_id} 已不存在或已完成, 忽略状态更新 -> {status.value}")
        return False
    logger.trace(f"更新提醒状态: id={entry_id}, status={status.value}, voice_played={voice_played}, reason={failure_reason}")
    return True


async def delete_for_event(event_id: str) -> int:
    """删除某个事件的全部提醒 (取消路径)"""
    _ensure_conn()
    async with db_config.write_lock:
        cursor = await db_config.conn.execute("DELETE FROM reminder_entries WHERE event_id = ?", (event_id,))
        deleted = cursor.rowcount
        await cursor.close()
        await db_config.conn.commit()
    logger.debug(f"删除事件 {event_id} 的提醒 {deleted} 条")
    return deleted


async def cleanup(older_than: datetime) -> int:
    """删除完成时间 (没有则用触发时刻) 早于 older_than 的已完成条目, pending 条目永不清理"""
    _ensure_conn()
    async with db_config.write_lock:
        cursor = await db_config.conn.execute(
            "DELETE FROM reminder_entries WHERE status != 'pending' "
            "AND COALESCE(sent_at_utc, scheduled_for_utc) < ?",
            (to_db_str(older_than),),
        )
        deleted = cursor.rowcount
        await cursor.close()
        await db_config.conn.commit()
    if deleted:
        logger.debug(f"清理过期提醒 {deleted} 条")
    return deleted


async def list_entries(
    status: ReminderStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ReminderEntry], int]:
    """按触发时刻倒序分页列出条目, 同时返回总数"""
    _ensure_conn()
    where_sql = ""
    params: tuple = ()
    if status is not None:
        where_sql = "WHERE status = ?"
        params = (status.value,)

    async with db_config.conn.execute(f"SELECT COUNT(*) FROM reminder_entries {where_sql}", params) as cursor:
        row = await cursor.fetchone()
        total = int(row[0]) if row else 0

    items = await _select(f"{where_sql} ORDER BY scheduled_for_utc DESC LIMIT ? OFFSET ?", (*params, limit, offset))
    return items, total


async def count_by_status() -> dict[str, int]:
    _ensure_conn()
    counts = {status.value: 0 for status in ReminderStatus}
    async with db_config.conn.execute("SELECT status, COUNT(*) FROM reminder_entries GROUP BY status") as cursor:
        async for row in cursor:
            counts[row[0]] = row[1]
    return counts


__all__ = [
    "upsert", "get_entry", "list_for_event", "replace_for_event", "due_entries",
    "mark_result", "delete_for_event", "cleanup", "list_entries", "count_by_status",
]

import storage.db_config as db_config
from config.settings import VOICE_ALERTS_DEFAULT
from logger import logger

VOICE_ALERTS_KEY = "voice_alerts"


def _ensure_conn():
    if db_config.conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")


async def _get(key: str) -> str | None:
    _ensure_conn()
    async with db_config.conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)) as cursor:
        row = await cursor.fetchone()
        return row[0] if row else None


async def _set(key: str, value: str) -> None:
    _ensure_conn()
    async with db_config.write_lock:
        await db_config.conn.execute(
            "INSERT INTO preferences (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at_utc = CURRENT_TIMESTAMP",
            (key, value),
        )
        await db_config.conn.commit()


async def is_voice_enabled() -> bool:
    """语音提醒开关, 未设置过时取 VOICE_ALERTS_DEFAULT"""
    raw = await _get(VOICE_ALERTS_KEY)
    if raw is None:
        return VOICE_ALERTS_DEFAULT
    return raw == "true"


async def set_voice_enabled(enabled: bool) -> None:
    await _set(VOICE_ALERTS_KEY, "true" if enabled else "false")
    logger.info(f"语音提醒已{'开启' if enabled else '关闭'}")


__all__ = ["is_voice_enabled", "set_voice_enabled"]

import asyncio
import aiosqlite
import os
from pathlib import Path


conn: aiosqlite.Connection | None = None
# 单写者锁, 随连接一起创建, 保证与当前事件循环绑定
write_lock: asyncio.Lock | None = None

_SQL_DIR = Path(__file__).with_name("sql")
SCHEMA_VERSION = 1


async def init_db(db_path: str) -> None:
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)
    global conn, write_lock
    conn = await aiosqlite.connect(db_path)
    write_lock = asyncio.Lock()
    await conn.execute("PRAGMA journal_mode = WAL")

    async with conn.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        user_version = row[0]

    if user_version == 0:
        init_sql = (_SQL_DIR / "db_init_v1.sql").read_text(encoding="utf-8")
        await conn.executescript(init_sql)
        await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")

    # 数据库升级逻辑可以在这里继续添加
    await conn.commit()


async def close_db() -> None:
    global conn, write_lock
    if conn is not None:
        await conn.close()
        conn = None
    write_lock = None


__all__ = ["conn", "write_lock", "init_db", "close_db"]

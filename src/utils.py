from datetime import datetime, timezone
from zoneinfo import ZoneInfo

__all__ = ["now_utc", "ensure_utc", "to_db_str", "from_db_str", "utc_to_local", "format_local_clock",
           "format_time_until"]

# 数据库内统一使用 UTC, 格式 "YYYY-MM-DD HH:MM:SS", 字典序即时间序
DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_utc() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError(f"需要带时区的时间: {dt!r}")
    return dt.astimezone(timezone.utc)


def to_db_str(dt: datetime) -> str:
    return ensure_utc(dt).strftime(DB_TIME_FORMAT)


def from_db_str(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


def utc_to_local(utc_dt: datetime, tz_name: str) -> datetime:
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    return utc_dt.astimezone(ZoneInfo(tz_name))


def format_local_clock(utc_dt: datetime, tz_name: str) -> str:
    """例如 "9:30 AM" """
    local_dt = utc_to_local(utc_dt, tz_name)
    return local_dt.strftime("%I:%M %p").lstrip("0")


def format_time_until(minutes_before: int) -> str:
    if minutes_before >= 1440:
        days = round(minutes_before / 1440)
        return f"in {days} day{'s' if days > 1 else ''}"
    if minutes_before >= 60:
        hours = round(minutes_before / 60)
        return f"in {hours} hour{'s' if hours > 1 else ''}"
    return f"in {minutes_before} minute{'s' if minutes_before != 1 else ''}"

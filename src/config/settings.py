import os
from dotenv import load_dotenv
from logger import logger
load_dotenv()

__all__ = [
    "DB_PATH", "CLINICAL_DB_PATH", "LOG_FILE", "LOG_JSON_FILE", "DISPLAY_TIMEZONE",
    "DISPATCH_INTERVAL_SECONDS", "REBUILD_INTERVAL_SECONDS",
    "LOOKAHEAD_HOURS", "RETENTION_HOURS", "DUE_SLACK_SECONDS",
    "NOTIFIER_BACKEND", "NOTIFIER_TIMEOUT_SECONDS", "VOICE_ALERTS_DEFAULT",
    "ENABLE_BACKGROUND_BRIDGE", "BRIDGE_WS_PATH", "BRIDGE_WS_TOKEN",
    "ENABLE_ADMIN_HTTP", "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw!r}, 已回退到 {default}")
        return default
    if value < minimum:
        logger.warning(f"{name} 不能小于 {minimum}, 已回退到 {default}")
        return default
    return value


# 存储
DB_PATH = os.getenv("DB_PATH", "data/carebridge_reminders.db")
CLINICAL_DB_PATH = os.getenv("CLINICAL_DB_PATH", "")  # 为空时不接入临床记录库
LOG_FILE = os.getenv("LOG_FILE", "logs/carebridge.log")
LOG_JSON_FILE = os.getenv("LOG_JSON_FILE", "")  # 为空时不写 JSON 审计日志

# 通知正文中显示时间所用的时区
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "Africa/Lagos")


# 调度节奏
DISPATCH_INTERVAL_SECONDS = _parse_float("DISPATCH_INTERVAL_SECONDS", 30.0, minimum=1.0)
REBUILD_INTERVAL_SECONDS = _parse_float("REBUILD_INTERVAL_SECONDS", 300.0, minimum=5.0)
LOOKAHEAD_HOURS = _parse_float("LOOKAHEAD_HOURS", 48.0, minimum=1.0)
RETENTION_HOURS = _parse_float("RETENTION_HOURS", 24.0, minimum=0.0)
DUE_SLACK_SECONDS = _parse_float("DUE_SLACK_SECONDS", 60.0)


# 通知投递
NOTIFIER_BACKEND = os.getenv("NOTIFIER_BACKEND", "host").strip().lower()
if NOTIFIER_BACKEND not in ("host", "log"):
    logger.warning(f"NOTIFIER_BACKEND 非法: {NOTIFIER_BACKEND}, 仅支持 host 或 log, 已回退到 log")
    NOTIFIER_BACKEND = "log"

NOTIFIER_TIMEOUT_SECONDS = _parse_float("NOTIFIER_TIMEOUT_SECONDS", 10.0, minimum=0.1)
VOICE_ALERTS_DEFAULT = _parse_bool("VOICE_ALERTS_DEFAULT", True)


# 后台宿主桥接 (反向 WS)
ENABLE_BACKGROUND_BRIDGE = _parse_bool("ENABLE_BACKGROUND_BRIDGE", True)
BRIDGE_WS_PATH = os.getenv("BRIDGE_WS_PATH", "/bridge/ws")
BRIDGE_WS_TOKEN = os.getenv("BRIDGE_WS_TOKEN", "")
if NOTIFIER_BACKEND == "host" and not ENABLE_BACKGROUND_BRIDGE:
    logger.warning("NOTIFIER_BACKEND=host 但后台桥接已禁用, 所有通知都会改由本地日志投递")


# Admin API
ENABLE_ADMIN_HTTP = _parse_bool("ENABLE_ADMIN_HTTP", True)
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = int(_parse_float("ADMIN_HTTP_PORT", 18090.0, minimum=1.0))
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")

if ENABLE_BACKGROUND_BRIDGE and not ENABLE_ADMIN_HTTP:
    logger.warning("后台桥接依赖 HTTP 服务挂载 WS 路由, 当前 ENABLE_ADMIN_HTTP=false, 桥接不可用")

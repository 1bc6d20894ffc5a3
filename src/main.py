from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level="TRACE",
    log_file=LOG_FILE,
    console_level="INFO",
    json_log_file=LOG_JSON_FILE or None,
)

import asyncio
import os
import signal
import sys

import storage.db_config as db_config
from admin.http_server import main_loop as admin_http_main
from bridge.host_ws import configure_bridge, main as bridge_main
from notifier.base import Notifier
from scheduler.dispatcher import Dispatcher, configure_dispatcher
from scheduler.rebuild import Rebuilder, configure_rebuilder
from sources.base import DomainEventSource

shutdown_event = asyncio.Event()
restart_event = asyncio.Event()

def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()

def _create_source() -> DomainEventSource:
    """根据配置选择临床事件源"""
    if CLINICAL_DB_PATH:
        from sources.clinical import ClinicalRecordSource

        return ClinicalRecordSource(CLINICAL_DB_PATH, tz_name=DISPLAY_TIMEZONE)

    from sources.memory import InMemoryEventSource

    logger.warning("未配置 CLINICAL_DB_PATH, 使用空的内存事件源, 只接收通过 API 推送的事件")
    return InMemoryEventSource()

def _create_notifier() -> Notifier:
    from notifier.log import LogNotifier

    if NOTIFIER_BACKEND == "host":
        from notifier.host import HostNotifier

        # 宿主离线期间由本地日志兜底
        return HostNotifier(fallback=LogNotifier())
    return LogNotifier()


async def main():
    # 注册信号处理器
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    await db_config.init_db(DB_PATH)

    source = _create_source()
    dispatcher = Dispatcher(source, _create_notifier(), tz_name=DISPLAY_TIMEZONE)
    rebuilder = Rebuilder(source)
    configure_dispatcher(dispatcher)
    configure_rebuilder(rebuilder)

    try:
        tasks = [
            dispatcher.run_loop(shutdown_event),
            rebuilder.run_loop(shutdown_event),
        ]

        if ENABLE_ADMIN_HTTP:
            tasks.append(admin_http_main(shutdown_event, restart_event))
        else:
            logger.warning("Admin HTTP 服务已禁用")

        if ENABLE_BACKGROUND_BRIDGE:
            configure_bridge(on_tick=dispatcher.tick, on_rebuild=rebuilder.rebuild_all)
            tasks.append(bridge_main(shutdown_event))
        else:
            logger.warning("后台宿主桥接已禁用")

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭 CareBridge 提醒服务...")

        await source.close()
        logger.info("关闭数据库连接...")
        await db_config.close_db()
        if restart_event.is_set():
            logger.warning("检测到重启信号，正在重新拉起进程...")
            try:
                os.execv(sys.executable, [sys.executable, *sys.argv])
            except Exception as e:
                logger.opt(exception=e).error(f"重启失败: {e}")
        logger.info("CareBridge 提醒服务已关闭")


if __name__ == "__main__":
    logger.info("启动 CareBridge 提醒服务...")
    asyncio.run(main())

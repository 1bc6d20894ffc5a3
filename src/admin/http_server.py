from __future__ import annotations

import asyncio
import time

import uvicorn
import config.settings as settings
from logger import logger

from .app import create_app
from .schemas import RuntimeControl

_LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


def _build_server(control: RuntimeControl) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(control),
        host=settings.ADMIN_HTTP_HOST,
        port=settings.ADMIN_HTTP_PORT,
        log_level="info",
        access_log=False,
    )
    server = uvicorn.Server(config)
    # 信号统一由 main.py 处理
    server.install_signal_handlers = lambda: None
    return server


async def main_loop(
    shutdown_event: asyncio.Event,
    restart_event: asyncio.Event,
) -> None:
    """
    运行管理 API; 启用后台桥接时，宿主的反向 WS 也挂在同一个 uvicorn 服务上。

    shutdown_event 置位后通知 uvicorn 优雅退出，并等待在途请求结束。
    """
    control = RuntimeControl(
        shutdown_event=shutdown_event,
        restart_event=restart_event,
        started_at=time.time(),
    )
    server = _build_server(control)

    host, port = settings.ADMIN_HTTP_HOST, settings.ADMIN_HTTP_PORT
    if host not in _LOOPBACK_HOSTS:
        logger.warning(f"Admin HTTP 监听在非回环地址 {host}，请确认 ADMIN_AUTH_TOKEN 足够强")
    if settings.ENABLE_BACKGROUND_BRIDGE:
        logger.info(f"后台宿主可连接 ws://{host}:{port}{settings.BRIDGE_WS_PATH}")
    logger.info(f"Admin HTTP 服务准备启动: http://{host}:{port}")

    serve_task = asyncio.create_task(server.serve())
    stop_task = asyncio.create_task(shutdown_event.wait())
    try:
        done, _ = await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if serve_task in done:
            # lifespan 启动失败时 uvicorn 不报错直接返回
            if not server.started:
                logger.error(f"Admin HTTP 服务未能启动: {host}:{port}")
            serve_task.result()
        else:
            server.should_exit = True
            await serve_task
    except Exception as e:
        logger.opt(exception=e).error(f"Admin HTTP 服务异常退出: {e}")
    finally:
        stop_task.cancel()
        if not serve_task.done():
            server.should_exit = True
            await asyncio.gather(serve_task, return_exceptions=True)
        logger.info("Admin HTTP 服务已关闭")

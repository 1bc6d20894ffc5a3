"""后台宿主桥接 (反向 WS)

后台宿主 (浏览器 Service Worker 一类、界面关闭后仍能运行的进程) 主动连接本服务。
- 入站命令: {"type": "TICK_NOW"} 立即执行一次投递, {"type": "REBUILD_NOW"} 立即执行一次重建;
- 连接建立后本服务发送一次 {"type": "ENABLE_BACKGROUND_CHECKS"}, 让宿主定期唤醒我们;
- 出站动作: {"action": ..., "params": ..., "echo": ...}, 宿主以 {"echo": ..., "status": "ok"|"failed", "reason": ...} 应答。
桥接只是锦上添花: 宿主不在线时, 前台的两个定时循环照常驱动调度。
"""

from __future__ import annotations

import asyncio
import hmac
import json
import uuid
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config.settings import BRIDGE_WS_PATH, BRIDGE_WS_TOKEN, NOTIFIER_TIMEOUT_SECONDS
from events import E, bus
from logger import logger
from metrics import runtime_metrics

__all__ = [
    "BridgeError", "MSG_TICK_NOW", "MSG_REBUILD_NOW", "MSG_ENABLE_BACKGROUND_CHECKS",
    "configure_bridge", "register_fastapi_routes", "send_action", "get_status", "main",
]

MSG_TICK_NOW = "TICK_NOW"
MSG_REBUILD_NOW = "REBUILD_NOW"
MSG_ENABLE_BACKGROUND_CHECKS = "ENABLE_BACKGROUND_CHECKS"

CommandHandler = Callable[[], Awaitable[Any]]


class BridgeError(RuntimeError):
    pass


class _BridgeSession:
    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.send_lock = asyncio.Lock()

    async def send_json(self, payload: dict[str, Any]) -> None:
        async with self.send_lock:
            await self.websocket.send_text(json.dumps(payload, ensure_ascii=False))


_active_session: _BridgeSession | None = None
_session_lock = asyncio.Lock()
_pending_echo: dict[str, asyncio.Future] = {}
_command_handlers: dict[str, CommandHandler] = {}
_running_commands: set[asyncio.Task] = set()


def configure_bridge(on_tick: CommandHandler, on_rebuild: CommandHandler) -> None:
    _command_handlers[MSG_TICK_NOW] = on_tick
    _command_handlers[MSG_REBUILD_NOW] = on_rebuild


def get_status() -> dict[str, object]:
    return {
        "connected": _active_session is not None,
        "pending_calls": len(_pending_echo),
        "running_commands": len(_running_commands),
    }


def _extract_token(websocket: WebSocket) -> str:
    auth_header = websocket.headers.get("authorization", "").strip()
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    if auth_header != "":
        return auth_header

    qs_token = websocket.query_params.get("access_token") or websocket.query_params.get("token")
    return (qs_token or "").strip()


def _is_authorized(websocket: WebSocket) -> bool:
    if BRIDGE_WS_TOKEN == "":
        return True
    incoming = _extract_token(websocket)
    return hmac.compare_digest(incoming, BRIDGE_WS_TOKEN)


def _resolve_pending_response(payload: dict[str, Any]) -> None:
    echo = str(payload.get("echo", ""))
    if echo == "":
        return

    future = _pending_echo.get(echo)
    if future is None or future.done():
        return
    future.set_result(payload)


def _fail_all_pending(exc: Exception) -> None:
    for future in list(_pending_echo.values()):
        if not future.done():
            future.set_exception(exc)
    _pending_echo.clear()


async def _replace_active_session(session: _BridgeSession) -> None:
    global _active_session
    old: _BridgeSession | None = None
    async with _session_lock:
        old = _active_session
        _active_session = session

    if old is not None:
        try:
            await old.websocket.close(code=1012, reason="replaced")
        except Exception:
            pass


async def _detach_active_session(session: _BridgeSession) -> bool:
    global _active_session
    async with _session_lock:
        if _active_session is session:
            _active_session = None
            return True
    return False


async def _close_active_session(reason: str) -> None:
    global _active_session
    session: _BridgeSession | None = None
    async with _session_lock:
        session = _active_session
        _active_session = None

    if session is not None:
        try:
            await session.websocket.close(code=1001, reason=reason)
        except Exception:
            pass


async def send_action(action: str, params: dict[str, Any], timeout: float = NOTIFIER_TIMEOUT_SECONDS) -> dict[str, Any]:
    """向宿主发送一个动作并等待应答, 宿主不在线、超时或应答失败时抛出 BridgeError"""
    session = _active_session
    if session is None:
        raise BridgeError("后台宿主未连接")

    echo = uuid.uuid4().hex
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()
    _pending_echo[echo] = future

    try:
        await session.send_json({"action": action, "params": params, "echo": echo})
        response = await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError:
        raise BridgeError(f"宿主应答超时: action={action}") from None
    except BridgeError:
        raise
    except Exception as e:
        raise BridgeError(f"宿主调用失败: action={action}, error={e}") from e
    finally:
        _pending_echo.pop(echo, None)

    if response.get("status") != "ok":
        raise BridgeError(str(response.get("reason") or f"宿主拒绝执行: action={action}"))
    return response


async def _run_command(kind: str) -> None:
    handler = _command_handlers.get(kind)
    if handler is None:
        logger.warning(f"桥接命令 {kind} 没有注册处理器, 已忽略")
        return
    runtime_metrics.record_bridge_command()
    try:
        await handler()
    except Exception as e:
        logger.opt(exception=e).error(f"执行桥接命令 {kind} 失败: {e}")


def _dispatch_command(kind: str) -> None:
    # 命令放到后台执行: 处理过程中还要经由同一连接收发动作应答, 不能阻塞接收循环
    task = asyncio.create_task(_run_command(kind))
    _running_commands.add(task)
    task.add_done_callback(_running_commands.discard)


async def _handle_payload(payload: Any) -> None:
    if not isinstance(payload, dict):
        return

    if "echo" in payload:
        _resolve_pending_response(payload)
        return

    kind = payload.get("type")
    if kind in (MSG_TICK_NOW, MSG_REBUILD_NOW):
        logger.debug(f"收到宿主命令: {kind}")
        _dispatch_command(kind)
    else:
        logger.debug(f"忽略未知的宿主消息: {payload}")


def register_fastapi_routes(app: FastAPI) -> None:
    if getattr(app.state, "bridge_routes_registered", False):
        return

    @app.websocket(BRIDGE_WS_PATH)
    async def background_host_ws(websocket: WebSocket):
        if not _is_authorized(websocket):
            await websocket.close(code=1008, reason="unauthorized")
            logger.warning("后台宿主 WS 鉴权失败")
            return

        await websocket.accept()
        session = _BridgeSession(websocket)
        await _replace_active_session(session)
        logger.info(f"后台宿主已连接: path={BRIDGE_WS_PATH}")
        await session.send_json({"type": MSG_ENABLE_BACKGROUND_CHECKS})
        bus.emit(E.BRIDGE_CONNECTED)

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("收到无法解析的宿主消息, 已忽略")
                    continue
                await _handle_payload(payload)
        except WebSocketDisconnect:
            logger.warning("后台宿主 WS 已断开")
        except Exception as e:
            logger.opt(exception=e).error(f"后台宿主 WS 处理异常: {e}")
        finally:
            was_active = await _detach_active_session(session)
            if was_active:
                _fail_all_pending(BridgeError("后台宿主连接已断开"))
                bus.emit(E.BRIDGE_DISCONNECTED)

    app.state.bridge_routes_registered = True


async def main(shutdown_event: asyncio.Event) -> None:
    logger.info(f"后台宿主桥接已启动，等待反向 WS 连接: {BRIDGE_WS_PATH}")
    await shutdown_event.wait()
    await _close_active_session("service_shutdown")
    _fail_all_pending(BridgeError("服务已关闭"))
    for task in list(_running_commands):
        task.cancel()
    logger.info("后台宿主桥接已关闭")

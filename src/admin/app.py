from __future__ import annotations

import asyncio
import time
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

import storage.db_config as db_config
import storage.preferences as preferences
import storage.reminder as reminder_storage
from bridge.host_ws import get_status as get_bridge_status
from bridge.host_ws import register_fastapi_routes as register_bridge_routes
from config.settings import ENABLE_BACKGROUND_BRIDGE
from datamodel import ReminderEntry, ReminderStatus
from logger import logger
from metrics import runtime_metrics
from scheduler.dispatcher import Dispatcher, require_dispatcher
from scheduler.immediate import ImmediateNotificationError, notify_immediate
from scheduler.rebuild import Rebuilder, require_rebuilder

from .auth import AdminAuth, warn_if_unprotected
from .schemas import ClinicalArtifactIn, ClinicalEventIn, RuntimeControl, ShutdownRequest, VoicePreference


def entry_to_dict(entry: ReminderEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "event_id": entry.event_id,
        "event_kind": entry.event_kind.value,
        "scheduled_for_utc": entry.scheduled_for.isoformat(),
        "offset_minutes": entry.offset_minutes,
        "channel_hint": entry.channel_hint.value,
        "status": entry.status.value,
        "sent_at_utc": entry.sent_at.isoformat() if entry.sent_at else None,
        "voice_played": entry.voice_played,
        "failure_reason": entry.failure_reason,
    }


def _dispatcher() -> Dispatcher:
    try:
        return require_dispatcher()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))


def _rebuilder() -> Rebuilder:
    try:
        return require_rebuilder()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="CareBridge Reminder Admin API", version="1.0.0")
    warn_if_unprotected()
    if ENABLE_BACKGROUND_BRIDGE:
        register_bridge_routes(app)
        logger.info("已挂载后台宿主反向 WS 路由")

    def health_payload() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "bridge_connected": get_bridge_status()["connected"],
            "shutdown_requested": control.shutdown_event.is_set(),
            "restart_requested": control.restart_event.is_set(),
        }

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return health_payload()

    @app.get("/api/v1/metrics", dependencies=[AdminAuth])
    async def get_metrics() -> dict[str, Any]:
        dispatcher_status: dict[str, Any] = {"configured": False}
        try:
            dispatcher_status.update(require_dispatcher().get_status())
            dispatcher_status["configured"] = True
        except RuntimeError:
            pass

        rebuilder_status: dict[str, Any] = {"configured": False}
        try:
            rebuilder_status.update(require_rebuilder().get_status())
            rebuilder_status["configured"] = True
        except RuntimeError:
            pass

        reminder_counts: dict[str, int] = {}
        if db_config.conn is not None:
            try:
                reminder_counts = await reminder_storage.count_by_status()
            except Exception as e:
                logger.warning(f"读取提醒统计失败: {e}")

        return {
            "runtime": runtime_metrics.snapshot(),
            "reminders": reminder_counts,
            "components": {
                "db": {"connected": db_config.conn is not None},
                "dispatcher": dispatcher_status,
                "rebuilder": rebuilder_status,
                "bridge": {"enabled": ENABLE_BACKGROUND_BRIDGE, **get_bridge_status()},
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @app.get("/api/v1/reminders", dependencies=[AdminAuth])
    async def get_reminders(status: str | None = None, limit: int = 50, offset: int = 0) -> dict[str, Any]:
        limit = max(1, min(limit, 500))
        offset = max(0, offset)
        status_filter = None
        if status:
            try:
                status_filter = ReminderStatus(status)
            except ValueError:
                raise HTTPException(status_code=400, detail=f"未知状态: {status}")

        items, total = await reminder_storage.list_entries(status_filter, limit, offset)
        return {
            "items": [entry_to_dict(e) for e in items],
            "limit": limit,
            "offset": offset,
            "status": status,
            "total": total,
        }

    @app.get("/api/v1/reminders/{event_id}", dependencies=[AdminAuth])
    async def get_event_reminders(event_id: str) -> dict[str, Any]:
        entries = await reminder_storage.list_for_event(event_id)
        return {"event_id": event_id, "items": [entry_to_dict(e) for e in entries]}

    @app.post("/api/v1/dispatch/tick", dependencies=[AdminAuth])
    async def dispatch_tick() -> dict[str, Any]:
        report = await _dispatcher().tick()
        return {"ok": not report.errors, "report": asdict(report)}

    @app.post("/api/v1/rebuild", dependencies=[AdminAuth])
    async def rebuild() -> dict[str, Any]:
        report = await _rebuilder().rebuild_all()
        return {"ok": not report.errors, "report": asdict(report)}

    @app.post("/api/v1/events", dependencies=[AdminAuth])
    async def event_changed(payload: ClinicalEventIn) -> dict[str, Any]:
        if payload.scheduled_at.tzinfo is None:
            raise HTTPException(status_code=422, detail="scheduled_at 必须带时区")
        written = await _rebuilder().rebuild_event(payload.to_domain())
        entries = await reminder_storage.list_for_event(payload.id)
        return {"ok": True, "written": written, "items": [entry_to_dict(e) for e in entries]}

    @app.delete("/api/v1/events/{event_id}", dependencies=[AdminAuth])
    async def event_cancelled(event_id: str) -> dict[str, Any]:
        deleted = await _rebuilder().cancel_event(event_id)
        return {"ok": True, "deleted": deleted}

    @app.post("/api/v1/notifications", dependencies=[AdminAuth])
    async def immediate_notification(payload: ClinicalArtifactIn) -> dict[str, Any]:
        try:
            result = await notify_immediate(payload.to_domain(), _dispatcher().notifier)
        except ImmediateNotificationError as e:
            raise HTTPException(status_code=502, detail=e.reason)
        return {"ok": result.ok}

    @app.get("/api/v1/preferences/voice", dependencies=[AdminAuth])
    async def get_voice_preference() -> dict[str, bool]:
        return {"enabled": await preferences.is_voice_enabled()}

    @app.put("/api/v1/preferences/voice", dependencies=[AdminAuth])
    async def put_voice_preference(payload: VoicePreference) -> dict[str, bool]:
        await preferences.set_voice_enabled(payload.enabled)
        return {"enabled": payload.enabled}

    @app.post("/api/v1/admin/restart")
    async def admin_restart(payload: ShutdownRequest, user: str = AdminAuth) -> dict[str, Any]:
        logger.warning(f"收到远程重启请求: by={user}, reason={payload.reason}")
        control.restart_event.set()
        control.shutdown_event.set()
        return {"ok": True, "action": "restart", "reason": payload.reason}

    @app.post("/api/v1/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, user: str = AdminAuth) -> dict[str, Any]:
        logger.warning(f"收到远程关闭请求: by={user}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return app

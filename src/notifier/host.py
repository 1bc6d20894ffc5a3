from __future__ import annotations

from dataclasses import asdict

from bridge.host_ws import BridgeError, get_status as get_bridge_status, send_action
from datamodel import DeliveryResult, NotificationPayload, Urgency
from logger import logger
from notifier.base import Notifier
from notifier.log import LogNotifier
from scheduler.urgency import tone_for, voice_profile_for

__all__ = ["HostNotifier"]


class HostNotifier(Notifier):
    """通过后台宿主投递: 宿主负责弹出系统通知、合成语音、播放提示音

    宿主不在线时交给 fallback (默认 LogNotifier) 投递。
    """

    def __init__(self, fallback: Notifier | None = None) -> None:
        self.fallback = fallback or LogNotifier()

    def _host_connected(self) -> bool:
        return bool(get_bridge_status()["connected"])

    async def show_visual(self, payload: NotificationPayload) -> DeliveryResult:
        if not self._host_connected():
            logger.debug(f"后台宿主未连接, 通知改由本地投递: tag={payload.tag}")
            return await self.fallback.show_visual(payload)
        params = {
            "title": payload.title,
            "body": payload.body,
            "tag": payload.tag,
            "urgency": payload.urgency.value,
            "require_interaction": payload.require_interaction,
            "data": payload.data,
        }
        try:
            await send_action("show_notification", params)
        except BridgeError as e:
            logger.warning(f"宿主未能显示通知: tag={payload.tag}, reason={e}")
            return DeliveryResult.failure(str(e))
        return DeliveryResult.success()

    async def speak(self, text: str, urgency: Urgency) -> bool:
        if not self._host_connected():
            return await self.fallback.speak(text, urgency)
        params = {"text": text, "urgency": urgency.value, **asdict(voice_profile_for(urgency))}
        try:
            await send_action("speak", params)
        except BridgeError as e:
            logger.warning(f"宿主语音播报失败: {e}")
            return False
        return True

    async def play_tone(self, urgency: Urgency) -> None:
        if not self._host_connected():
            await self.fallback.play_tone(urgency)
            return
        await send_action("play_tone", {"urgency": urgency.value, **asdict(tone_for(urgency))})

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from datamodel import DeliveryResult, NotificationPayload, Urgency
from logger import logger

__all__ = ["Notifier", "FanoutResult", "deliver_payload"]


class Notifier(ABC):
    """面向用户的投递能力: 可视通知、语音播报、提示音"""

    @abstractmethod
    async def show_visual(self, payload: NotificationPayload) -> DeliveryResult:
        pass

    @abstractmethod
    async def speak(self, text: str, urgency: Urgency) -> bool:
        pass

    @abstractmethod
    async def play_tone(self, urgency: Urgency) -> None:
        pass


@dataclass
class FanoutResult:
    visual: DeliveryResult
    voice_played: bool = False
    voice_error: Optional[str] = None


async def deliver_payload(notifier: Notifier, payload: NotificationPayload, timeout: float) -> FanoutResult:
    """先投递可视通知; 成功且载荷带语音文本时, 先响提示音再播报

    任何一步超时或抛异常都视为该步失败, 不会向上抛出。
    """
    try:
        visual = await asyncio.wait_for(notifier.show_visual(payload), timeout=timeout)
    except asyncio.TimeoutError:
        return FanoutResult(visual=DeliveryResult.failure(f"visual timeout after {timeout:g}s"))
    except Exception as e:
        logger.warning(f"可视通知投递异常: tag={payload.tag}, error={e}")
        return FanoutResult(visual=DeliveryResult.failure(f"visual error: {e}"))

    if not visual.ok or not payload.voice_text:
        return FanoutResult(visual=visual)

    try:
        await asyncio.wait_for(notifier.play_tone(payload.urgency), timeout=timeout)
    except Exception as e:
        # 提示音只是语音前的提示, 失败不影响播报
        logger.warning(f"提示音播放失败: tag={payload.tag}, error={e!r}")

    try:
        spoken = await asyncio.wait_for(notifier.speak(payload.voice_text, payload.urgency), timeout=timeout)
    except asyncio.TimeoutError:
        return FanoutResult(visual=visual, voice_error=f"speech timeout after {timeout:g}s")
    except Exception as e:
        logger.warning(f"语音播报异常: tag={payload.tag}, error={e}")
        return FanoutResult(visual=visual, voice_error=f"speech error: {e}")

    if not spoken:
        return FanoutResult(visual=visual, voice_error="speech unavailable")
    return FanoutResult(visual=visual, voice_played=True)

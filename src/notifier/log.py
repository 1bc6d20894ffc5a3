from datamodel import DeliveryResult, NotificationPayload, Urgency
from logger import logger
from notifier.base import Notifier
from scheduler.urgency import tone_for, voice_profile_for

__all__ = ["LogNotifier"]


class LogNotifier(Notifier):
    """无界面环境下的投递实现, 只写日志"""

    def __init__(self, speech_available: bool = False) -> None:
        self.speech_available = speech_available

    async def show_visual(self, payload: NotificationPayload) -> DeliveryResult:
        body = payload.body.replace("\n", " | ")
        logger.info(f"[通知][{payload.urgency.value}] {payload.title}: {body} (tag={payload.tag})")
        return DeliveryResult.success()

    async def speak(self, text: str, urgency: Urgency) -> bool:
        if not self.speech_available:
            logger.debug(f"语音合成不可用, 跳过播报: {text}")
            return False
        profile = voice_profile_for(urgency)
        logger.info(f"[语音][rate={profile.rate} pitch={profile.pitch} volume={profile.volume}] {text}")
        return True

    async def play_tone(self, urgency: Urgency) -> None:
        tone = tone_for(urgency)
        logger.debug(f"[提示音] {tone.waveform} {tone.first_hz:g}Hz -> {tone.second_hz:g}Hz, gain={tone.gain}")

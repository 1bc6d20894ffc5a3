"""即时通知

临床产物 (检查/检验申请、处方、治疗计划及其结果) 在创建时直接通知, 不经过提醒库。
失败向调用方抛出 ImmediateNotificationError, 是否重试由调用方决定。
"""

from __future__ import annotations

import storage.preferences as preferences
from config.settings import NOTIFIER_TIMEOUT_SECONDS, VOICE_ALERTS_DEFAULT
from datamodel import ArtifactKind, ClinicalArtifact, DeliveryResult
from logger import logger
from metrics import runtime_metrics
from notifier.base import Notifier, deliver_payload
from scheduler.formatter import render_artifact
from scheduler.rebuild import get_rebuilder
from scheduler.urgency import immediate_urgency

__all__ = ["ImmediateNotificationError", "notify_immediate"]


class ImmediateNotificationError(RuntimeError):
    def __init__(self, artifact: ClinicalArtifact, reason: str):
        super().__init__(f"{artifact.kind.value} {artifact.id}: {reason}")
        self.artifact = artifact
        self.reason = reason


async def _voice_enabled() -> bool:
    try:
        return await preferences.is_voice_enabled()
    except Exception as e:
        logger.warning(f"读取语音开关失败, 使用默认值 {VOICE_ALERTS_DEFAULT}: {e}")
        return VOICE_ALERTS_DEFAULT


async def notify_immediate(
    artifact: ClinicalArtifact,
    notifier: Notifier,
    timeout: float = NOTIFIER_TIMEOUT_SECONDS,
) -> DeliveryResult:
    urgency = immediate_urgency(artifact.kind, artifact.priority)
    payload = render_artifact(artifact, urgency, with_voice=await _voice_enabled())

    result = await deliver_payload(notifier, payload, timeout)
    if not result.visual.ok:
        runtime_metrics.record_immediate(ok=False)
        reason = result.visual.reason or "delivery failed"
        logger.warning(f"即时通知投递失败: {artifact.kind.value} {artifact.id}, reason={reason}")
        raise ImmediateNotificationError(artifact, reason)

    runtime_metrics.record_immediate(ok=True)
    if result.voice_error:
        logger.warning(f"即时通知语音未播报: {artifact.kind.value} {artifact.id}, {result.voice_error}")
    logger.info(f"即时通知已投递: {artifact.kind.value} {artifact.id}, urgency={urgency.value}")

    if artifact.kind == ArtifactKind.TREATMENT_PLAN and artifact.has_scheduled_activities:
        rebuilder = get_rebuilder()
        if rebuilder is None:
            logger.warning(f"Rebuilder 未配置, 治疗计划 {artifact.id} 的活动提醒等待下次重建")
        else:
            try:
                await rebuilder.reschedule_treatment_plan(artifact.id)
            except Exception as e:
                logger.opt(exception=e).error(f"治疗计划 {artifact.id} 的活动提醒重建失败: {e}")

    return result.visual

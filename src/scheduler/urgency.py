from dataclasses import dataclass

from datamodel import ArtifactKind, Priority, Urgency

__all__ = [
    "compute_urgency", "immediate_urgency",
    "VoiceProfile", "ToneSpec", "voice_profile_for", "tone_for",
]


def compute_urgency(offset_minutes: int, priority: Priority) -> Urgency:
    """由提前量和事件优先级决定紧急程度"""
    if offset_minutes <= 15:
        urgency = Urgency.HIGH
    elif offset_minutes <= 60:
        urgency = Urgency.MEDIUM
    else:
        urgency = Urgency.LOW

    if priority == Priority.EMERGENCY:
        return Urgency.HIGH
    if priority == Priority.URGENT and urgency == Urgency.LOW:
        return Urgency.MEDIUM
    return urgency


_URGENT_ARTIFACT_PRIORITIES = {"urgent", "stat"}

# 结果就绪类通知总是高优先级, 处方类总是中等
_FIXED_ARTIFACT_URGENCY: dict[ArtifactKind, Urgency] = {
    ArtifactKind.INVESTIGATION_RESULT: Urgency.HIGH,
    ArtifactKind.LAB_RESULT: Urgency.HIGH,
    ArtifactKind.PRESCRIPTION: Urgency.MEDIUM,
    ArtifactKind.PRESCRIPTION_READY: Urgency.MEDIUM,
}


def immediate_urgency(kind: ArtifactKind, priority: str | None) -> Urgency:
    fixed = _FIXED_ARTIFACT_URGENCY.get(kind)
    if fixed is not None:
        return fixed
    raw = (priority or "").strip().lower()
    urgent = set(_URGENT_ARTIFACT_PRIORITIES)
    if kind == ArtifactKind.TREATMENT_PLAN:
        urgent.add("high")
    return Urgency.HIGH if raw in urgent else Urgency.MEDIUM


@dataclass(frozen=True)
class VoiceProfile:
    rate: float
    pitch: float
    volume: float


@dataclass(frozen=True)
class ToneSpec:
    """两声上行提示音: 先 first_hz 再 second_hz"""
    first_hz: float
    second_hz: float
    waveform: str
    gain: float
    beep_ms: int = 200
    gap_ms: int = 300


_VOICE_PROFILES: dict[Urgency, VoiceProfile] = {
    Urgency.HIGH: VoiceProfile(rate=1.1, pitch=1.2, volume=1.0),
    Urgency.MEDIUM: VoiceProfile(rate=1.0, pitch=1.0, volume=0.9),
    Urgency.LOW: VoiceProfile(rate=0.9, pitch=0.9, volume=0.8),
}

_TONES: dict[Urgency, ToneSpec] = {
    Urgency.HIGH: ToneSpec(first_hz=800, second_hz=1000, waveform="square", gain=0.5),
    Urgency.MEDIUM: ToneSpec(first_hz=600, second_hz=750, waveform="sine", gain=0.3),
    Urgency.LOW: ToneSpec(first_hz=440, second_hz=550, waveform="sine", gain=0.2),
}


def voice_profile_for(urgency: Urgency) -> VoiceProfile:
    return _VOICE_PROFILES[urgency]


def tone_for(urgency: Urgency) -> ToneSpec:
    return _TONES[urgency]

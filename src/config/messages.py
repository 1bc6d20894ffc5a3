"""通知文案

显示给临床人员的文本保持英文, 与医院信息系统的界面语言一致。
"""

from datamodel import ArtifactKind, EventKind

EVENT_EMOJI = {
    EventKind.SURGERY: "\U0001F3E5",             # 🏥
    EventKind.APPOINTMENT: "\U0001F4C5",         # 📅
    EventKind.TREATMENT_ACTIVITY: "\U0001F48A",  # 💊
}
DEFAULT_EMOJI = "⏰"  # ⏰
LOCATION_PIN = "\U0001F4CD"  # 📍

EVENT_LABEL = {
    EventKind.SURGERY: "Surgery",
    EventKind.APPOINTMENT: "Appointment",
    EventKind.TREATMENT_ACTIVITY: "Treatment",
}

EVENT_URL_PREFIX = {
    EventKind.SURGERY: "/surgery",
    EventKind.APPOINTMENT: "/appointments",
    EventKind.TREATMENT_ACTIVITY: "/treatment-plans",
}

REMINDER_TITLE = "{emoji} {label} Reminder"
REMINDER_VOICE = "Attention! {label} reminder. {patient} has a {title} scheduled {time_until}."

# kind -> (标题, 正文, 语音, 跳转前缀, 是否需要确认)
ARTIFACT_TEMPLATES = {
    ArtifactKind.INVESTIGATION: (
        "\U0001F52C New Investigation Request",
        "{label} requested for {patient}\n{hospital}",
        "New investigation request. {label} for patient {patient}.",
        "/investigations",
        False,
    ),
    ArtifactKind.LAB_ORDER: (
        "\U0001F9EA New Lab Request",
        "{items} requested for {patient}\n{hospital}",
        "New lab request. {items} for patient {patient}.",
        "/laboratory",
        False,
    ),
    ArtifactKind.PRESCRIPTION: (
        "\U0001F48A New Prescription",
        "{count} medication{plural} prescribed for {patient}\n{items}",
        "New prescription. {count} medication{plural} prescribed for patient {patient}.",
        "/pharmacy/prescriptions",
        False,
    ),
    ArtifactKind.TREATMENT_PLAN: (
        "\U0001F4CB New Treatment Plan",
        "{label} created for {patient}\n{summary}",
        "New treatment plan created. {label} for patient {patient}.",
        "/treatment-plans",
        True,
    ),
    ArtifactKind.INVESTIGATION_RESULT: (
        "\U0001F4CA Investigation Results Ready",
        "{label} results for {patient} are now available",
        "Investigation results ready. {label} results for patient {patient} are now available.",
        "/investigations",
        True,
    ),
    ArtifactKind.LAB_RESULT: (
        "\U0001F9EA Lab Results Ready",
        "{items} results for {patient} are now available",
        "Lab results ready. {items} results for patient {patient} are now available.",
        "/laboratory",
        True,
    ),
    ArtifactKind.PRESCRIPTION_READY: (
        "✅ Prescription Ready",
        "Medications for {patient} are ready for collection",
        "Prescription ready. Medications for patient {patient} are ready for collection.",
        "/pharmacy/prescriptions",
        False,
    ),
}

ARTIFACT_DEFAULT_LABEL = {
    ArtifactKind.INVESTIGATION: "Investigation",
    ArtifactKind.INVESTIGATION_RESULT: "Investigation",
    ArtifactKind.TREATMENT_PLAN: "Treatment plan",
}
DEFAULT_ITEMS_TEXT = {
    ArtifactKind.LAB_ORDER: "Lab tests",
    ArtifactKind.LAB_RESULT: "Lab tests",
    ArtifactKind.PRESCRIPTION: "Medications",
}
DEFAULT_PLAN_SUMMARY = "View details for more information"

__all__ = [
    "EVENT_EMOJI", "DEFAULT_EMOJI", "LOCATION_PIN", "EVENT_LABEL", "EVENT_URL_PREFIX",
    "REMINDER_TITLE", "REMINDER_VOICE",
    "ARTIFACT_TEMPLATES", "ARTIFACT_DEFAULT_LABEL", "DEFAULT_ITEMS_TEXT", "DEFAULT_PLAN_SUMMARY",
]

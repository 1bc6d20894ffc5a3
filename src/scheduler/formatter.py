"""把提醒条目 / 临床产物渲染成通知载荷"""

from config.messages import *
from datamodel import *
from utils import format_local_clock, format_time_until

__all__ = ["render_reminder", "render_artifact"]

# 处方正文最多列出的药品数
_MAX_LISTED_MEDICATIONS = 3


def render_reminder(
    event: DomainEvent,
    entry: ReminderEntry,
    urgency: Urgency,
    tz_name: str,
    with_voice: bool,
) -> NotificationPayload:
    label = EVENT_LABEL.get(event.kind, "Event")
    time_until = format_time_until(entry.offset_minutes)

    lines = [
        f"{event.title} - {event.patient_name}",
        f"{time_until} at {format_local_clock(event.scheduled_at, tz_name)}",
    ]
    if event.location:
        lines.append(f"{LOCATION_PIN} {event.location}")

    voice_text = None
    if with_voice:
        voice_text = REMINDER_VOICE.format(
            label=label,
            patient=event.patient_name,
            title=event.title.lower(),
            time_until=time_until,
        )

    return NotificationPayload(
        title=REMINDER_TITLE.format(emoji=EVENT_EMOJI.get(event.kind, DEFAULT_EMOJI), label=label),
        body="\n".join(lines),
        tag=f"carebridge-{event.kind.value}-{event.id}",
        urgency=urgency,
        voice_text=voice_text,
        require_interaction=urgency == Urgency.HIGH,
        data={
            "type": event.kind.value,
            "eventId": event.id,
            "reminderId": entry.id,
            "patientId": event.patient_id,
            "url": f"{EVENT_URL_PREFIX[event.kind]}/{event.id}",
        },
    )


def render_artifact(artifact: ClinicalArtifact, urgency: Urgency, with_voice: bool) -> NotificationPayload:
    title, body_tpl, voice_tpl, url_prefix, require_interaction = ARTIFACT_TEMPLATES[artifact.kind]

    items = [i for i in artifact.items if i]
    if artifact.kind == ArtifactKind.PRESCRIPTION:
        items_text = ", ".join(items[:_MAX_LISTED_MEDICATIONS]) or DEFAULT_ITEMS_TEXT[artifact.kind]
        if len(items) > _MAX_LISTED_MEDICATIONS:
            items_text += "..."
    else:
        items_text = ", ".join(items) or DEFAULT_ITEMS_TEXT.get(artifact.kind, "")

    fields = {
        "label": artifact.label or ARTIFACT_DEFAULT_LABEL.get(artifact.kind, ""),
        "items": items_text,
        "count": len(items),
        "plural": "" if len(items) == 1 else "s",
        "patient": artifact.patient_name,
        "hospital": artifact.hospital_name,
        "summary": artifact.summary or DEFAULT_PLAN_SUMMARY,
    }

    return NotificationPayload(
        title=title,
        body=body_tpl.format(**fields),
        tag=f"{artifact.kind.value.replace('_', '-')}-{artifact.id}",
        urgency=urgency,
        voice_text=voice_tpl.format(**fields) if with_voice else None,
        require_interaction=require_interaction or urgency == Urgency.HIGH,
        data={
            "type": artifact.kind.value,
            "id": artifact.id,
            "patientId": artifact.patient_id,
            "url": f"{url_prefix}/{artifact.id}",
        },
    )

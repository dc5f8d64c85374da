"""Classification of Parallel task group events."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sheetfill.core.sse import SSEFrame

logger = logging.getLogger(__name__)

RUN_STATE_EVENT = "task_run.state"
GROUP_STATUS_EVENT = "task_group_status"


class EventKind(str, Enum):
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"
    GROUP_STATUS = "group.status"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class TaskEvent:
    kind: EventKind
    job_id: str | None = None
    output: Any = None
    active: bool | None = None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def extract_output_content(output: Any) -> dict[str, Any]:
    """Return the key/value object a completed run produced.

    Runs report ``{"output": {"content": {...}}}``; older payloads place the
    object directly under ``output``.  A JSON string is decoded when it holds
    an object.  Anything else yields an empty mapping.
    """

    if isinstance(output, dict) and "content" in output:
        content = output["content"]
    else:
        content = output
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError:
            return {}
    return content if isinstance(content, dict) else {}


def is_unresolved_completion(frame_data: Any) -> bool:
    """True for a completed run event that arrived without its output."""

    data = _as_dict(frame_data)
    run = _as_dict(data.get("run"))
    return (
        data.get("type") == RUN_STATE_EVENT
        and run.get("status") == "completed"
        and bool(run.get("run_id"))
        and not data.get("output")
    )


def is_group_inactive(frame_data: Any) -> bool:
    data = _as_dict(frame_data)
    return _as_dict(data.get("status")).get("is_active") is False


def classify(data: Any) -> TaskEvent:
    """Map a decoded event payload to a :class:`TaskEvent`."""

    payload = _as_dict(data)
    event_type = payload.get("type")

    if event_type in (RUN_STATE_EVENT, "task_run"):
        run = _as_dict(payload.get("run"))
        status = run.get("status")
        run_id = run.get("run_id") or None
        if status == "completed" and payload.get("output"):
            return TaskEvent(EventKind.JOB_COMPLETED, job_id=run_id, output=payload["output"])
        if status == "failed":
            return TaskEvent(EventKind.JOB_FAILED, job_id=run_id)
        return TaskEvent(EventKind.OTHER, job_id=run_id)

    if event_type == GROUP_STATUS_EVENT:
        is_active = _as_dict(payload.get("status")).get("is_active")
        return TaskEvent(EventKind.GROUP_STATUS, active=is_active is not False)

    return TaskEvent(EventKind.OTHER)


def decode_frame(frame: SSEFrame) -> TaskEvent | None:
    """Classify a frame, returning ``None`` for frames that must be skipped."""

    if not frame.data.strip():
        return None
    try:
        data = frame.json()
    except ValueError:
        logger.warning("Skipping malformed %s event: %.200s", frame.event or "message", frame.data)
        return None
    return classify(data)

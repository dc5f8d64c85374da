"""Server-sent event framing helpers."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

KEEP_ALIVE = ": keep-alive\n\n"


@dataclass(frozen=True, slots=True)
class SSEFrame:
    """One ``event:``/``id:``/``data:`` block terminated by a blank line."""

    event: str = ""
    id: str = ""
    data: str = ""
    raw: str = ""

    def json(self) -> Any:
        """Decode ``data`` as JSON; raises :class:`ValueError` when malformed."""

        return json.loads(self.data)

    def encode(self) -> str:
        if self.raw:
            return f"{self.raw}\n\n"
        return format_frame(self.event, self.data, event_id=self.id)


def format_frame(event: str, data: str, *, event_id: str = "") -> str:
    lines: list[str] = []
    if event:
        lines.append(f"event: {event}")
    if event_id:
        lines.append(f"id: {event_id}")
    for chunk in data.split("\n"):
        lines.append(f"data: {chunk}")
    return "\n".join(lines) + "\n\n"


def parse_frame(block: str) -> SSEFrame | None:
    """Parse a single frame; comment-only blocks return ``None``."""

    event = ""
    event_id = ""
    data_lines: list[str] = []
    for line in block.split("\n"):
        if not line or line.startswith(":"):
            continue
        name, sep, value = line.partition(":")
        if not sep:
            continue
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "id":
            event_id = value
        elif name == "data":
            data_lines.append(value)

    if not event and not event_id and not data_lines:
        return None
    return SSEFrame(event=event, id=event_id, data="\n".join(data_lines), raw=block)


class SSEParser:
    """Incremental parser; keeps any partial trailing frame between feeds."""

    def __init__(self) -> None:
        self._buffer = ""

    def feed(self, chunk: str) -> list[SSEFrame]:
        self._buffer += chunk.replace("\r\n", "\n").replace("\r", "\n")
        blocks = self._buffer.split("\n\n")
        self._buffer = blocks.pop()
        frames: list[SSEFrame] = []
        for block in blocks:
            if not block.strip():
                continue
            frame = parse_frame(block)
            if frame is not None:
                frames.append(frame)
        return frames

    @property
    def pending(self) -> str:
        return self._buffer

"""Resolution of output keys to grid columns.

Research output keys are expected to match the target headers, but models
drift on case and punctuation.  Keys are resolved in three tiers: an exact
match on the current header text, a normalised match on the current header
text, then a normalised match against the headers recorded when the job was
submitted (which still holds if the header cell was edited mid-run).
"""
from __future__ import annotations

import re
import unicodedata
from typing import Sequence

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_header(name: object) -> str:
    text = unicodedata.normalize("NFKC", str(name or "")).lower()
    return _NON_ALNUM.sub("", text)


def resolve_column(
    key: str,
    headers: Sequence[str],
    target_cols: Sequence[int],
    target_headers: Sequence[str],
) -> int | None:
    """Return the grid column an output key belongs to, or ``None``."""

    candidates = [col for col in target_cols if 0 <= col < len(headers)]

    for col in candidates:
        if headers[col] == key:
            return col

    wanted = normalize_header(key)
    if not wanted:
        return None
    for col in candidates:
        if normalize_header(headers[col]) == wanted:
            return col

    for index, header in enumerate(target_headers):
        if index >= len(target_cols):
            break
        col = target_cols[index]
        if normalize_header(header) == wanted and 0 <= col < len(headers):
            return col
    return None

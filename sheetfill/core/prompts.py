from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

RESEARCH_RULES = [
    "- Use the latest authoritative sources (official sites/filings/docs/news; LinkedIn for headcount as needed).",
    "- Provide a single concise value per target; if truly unavailable, set the value to null.",
    "- Prefer integers for counts, ISO dates for dates, and short strings otherwise; no units in numeric values.",
]


def build_prompt(context: Mapping[str, Any], target_headers: Sequence[str]) -> str:
    """Instruction sent with every run: row context plus the keys to fill."""

    return "\n".join(
        [
            "You are completing unknown cells in a spreadsheet row using live web research.",
            "Return only a single flat JSON object whose keys are exactly the target column names. "
            "No markdown, no code fences, no extra keys.",
            "Rules:",
            *RESEARCH_RULES,
            "",
            "Row context (JSON):",
            json.dumps(dict(context), indent=2, ensure_ascii=False, default=str),
            "",
            "Target columns to fill (exact key names):",
            "\n".join(f"- {header}" for header in target_headers),
            "",
            "Output: ONLY the JSON object for these keys.",
        ]
    )


def build_output_schema(target_headers: Sequence[str]) -> dict[str, Any]:
    """Closed JSON schema whose required keys are exactly ``target_headers``."""

    return {
        "type": "json",
        "json_schema": {
            "type": "object",
            "properties": {
                header: {
                    "type": "string",
                    "description": f"Value for {header} column. Return null if not found.",
                }
                for header in target_headers
            },
            "required": list(target_headers),
            "additionalProperties": False,
        },
    }

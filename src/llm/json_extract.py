# src/llm/json_extract.py — v1
"""Extract a JSON object from an LLM response.

Models sometimes wrap JSON in ``` fences or surround it with prose; both
are tolerated. Anything else raises json.JSONDecodeError for the caller's
fallback path.
"""

from __future__ import annotations

import json
from typing import Any


def extract_json(content: str) -> dict[str, Any]:
    """Parse the first JSON object found in ``content``.

    Raises:
        json.JSONDecodeError: If no JSON object can be decoded.
    """
    text = content.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [ln for ln in lines if not ln.strip().startswith("```")]
        text = "\n".join(lines).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise
        parsed = json.loads(text[start : end + 1])

    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", text, 0)
    return parsed


def clamp_score(value: Any, default: float = 0.0) -> float:
    """Coerce a model-provided score into [0, 1]."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return max(0.0, min(1.0, score))

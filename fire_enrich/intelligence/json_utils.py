"""Utilities for pulling JSON objects out of LLM responses."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


def coerce_json_payload(text: Optional[str]) -> Dict[str, Any]:
    """
    Extract and parse a JSON object from an LLM response.

    Handles code fences, leading or trailing prose, and a top-level object
    wrapped in extra text. Raises ValueError when no object can be decoded.
    """
    if not text or not text.strip():
        raise ValueError("Empty payload")

    candidate = text.strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", candidate, re.DOTALL)
        if not match:
            raise ValueError("Could not extract JSON from payload")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError("Could not extract JSON from payload") from e

    if not isinstance(parsed, dict):
        raise ValueError("JSON payload is not an object")
    return parsed

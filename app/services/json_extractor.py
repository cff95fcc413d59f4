"""
Double Mirror — JSON recovery for raw model completions.

Gemini is asked for ``application/json`` output, but completions still
arrive wrapped in markdown fences, leading prose or trailing commentary.
``extract_json`` recovers the first JSON object it can find and returns
``None`` (never raises) when nothing usable is present.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog
from json_repair import repair_json

logger = structlog.get_logger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        result = json.loads(candidate)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None
    return result if isinstance(result, dict) else None


def _first_object_span(text: str) -> str | None:
    """The first balanced ``{...}`` span, ignoring braces inside strings.

    When the opening brace is never closed, falls back to the greedy span
    from the first ``{`` to the last ``}`` (``None`` if there is none).
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    end = text.rfind("}")
    return text[start : end + 1] if end > start else None


def extract_json(raw_text: str | None) -> dict[str, Any] | None:
    """Pull a JSON object out of a raw completion.

    Pipeline:
    1. Direct ``json.loads`` on the stripped text
    2. Markdown code-fence extraction
    3. First balanced brace span (falling back to first ``{`` to last ``}``)
    4. ``json_repair`` on that span as a last resort

    Returns ``None`` when there is no brace span at all or when no
    strategy yields a JSON object.  Callers treat ``None`` as "no
    structured data", not as a fatal error.
    """
    if not raw_text or not raw_text.strip():
        return None

    cleaned = raw_text.strip()

    # Strategy 1: Direct parse
    result = _loads_object(cleaned)
    if result is not None:
        return result

    # Strategy 2: Markdown code-fence extraction
    fence_match = _FENCE_PATTERN.search(cleaned)
    if fence_match:
        result = _loads_object(fence_match.group(1).strip())
        if result is not None:
            return result

    # Strategy 3: first balanced brace span, else first ``{`` to last ``}``
    candidate = _first_object_span(cleaned)
    if candidate is None:
        logger.debug("json_extract_no_brace_span", preview=cleaned[:80])
        return None

    result = _loads_object(candidate)
    if result is not None:
        return result

    # Strategy 4: json_repair (best-effort)
    try:
        repaired = repair_json(candidate)
    except Exception as exc:
        logger.debug("json_repair_failed", error=str(exc))
        return None

    result = _loads_object(repaired) if isinstance(repaired, str) else None
    if result is not None:
        logger.info("json_parsed_via_json_repair", original_preview=candidate[:80])
        return result

    logger.warning("json_extract_failed", preview=cleaned[:200])
    return None

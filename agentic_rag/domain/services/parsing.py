# agentic_rag/domain/services/parsing.py
# Pure domain services: no I/O, deterministic, no external libraries.
"""Typed parsing of structured model output.

Every parser returns Result[T, ParseFailure]; call sites pick their own
documented fallback with Result.unwrap_or instead of casting blindly.
"""

from __future__ import annotations

import json
import re
from typing import Any

from agentic_rag.domain.errors import ParseFailure
from agentic_rag.domain.services.reranking import clamp01
from agentic_rag.domain.types import Result

_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
_NUMBER_RE = re.compile(r"\d+\.?\d*")


def strip_code_fences(text: str) -> str:
    match = _CODE_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def parse_json(text: str, call_site: str) -> Result[Any, ParseFailure]:
    raw = strip_code_fences(text or "")
    try:
        return Result.success(json.loads(raw))
    except (json.JSONDecodeError, TypeError) as ex:
        return Result.failure(ParseFailure(call_site=call_site, raw=raw[:200], detail=str(ex)))


def parse_json_object(text: str, call_site: str) -> Result[dict[str, Any], ParseFailure]:
    parsed = parse_json(text, call_site)
    if not parsed.ok:
        return parsed
    if not isinstance(parsed.value, dict):
        return Result.failure(
            ParseFailure(call_site=call_site, raw=(text or "")[:200], detail="expected JSON object")
        )
    return Result.success(parsed.value)


def parse_string_list(text: str, call_site: str) -> Result[list[str], ParseFailure]:
    parsed = parse_json(text, call_site)
    if not parsed.ok:
        return parsed
    value = parsed.value
    if not isinstance(value, list) or not value:
        return Result.failure(
            ParseFailure(call_site=call_site, raw=(text or "")[:200], detail="expected JSON array")
        )
    items = [str(v).strip() for v in value if str(v).strip()]
    if not items:
        return Result.failure(ParseFailure(call_site=call_site, detail="empty array"))
    return Result.success(items)


def first_number(text: str, call_site: str) -> Result[float, ParseFailure]:
    """First decimal number in free text, clamped to [0,1]."""
    match = _NUMBER_RE.search(text or "")
    if not match:
        return Result.failure(ParseFailure(call_site=call_site, raw=(text or "")[:200]))
    return Result.success(clamp01(float(match.group(0))))


def parse_bare_score(text: str, call_site: str) -> Result[float, ParseFailure]:
    """The whole response must be a number (non-detailed pointwise scoring)."""
    try:
        return Result.success(clamp01(float((text or "").strip())))
    except ValueError as ex:
        return Result.failure(ParseFailure(call_site=call_site, raw=(text or "")[:200], detail=str(ex)))

"""Helpers for turning free-form model output into structured values."""
from __future__ import annotations

import json
import math
from typing import Any


def strip_code_fences(raw_text: str) -> str:
    text = (raw_text or "").strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()
    return text


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Return the first ``{...}`` object found in ``raw_text``.

    Raises ``json.JSONDecodeError`` when no object can be parsed.
    """
    text = strip_code_fences(raw_text)
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        raise json.JSONDecodeError("object not found", text, 0)
    parsed = json.loads(text[start : end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("not an object", text, 0)
    return parsed


def normalize_text_list(raw_values: Any, *, max_items: int, min_len: int = 1) -> list[str]:
    if not isinstance(raw_values, list):
        return []
    cleaned: list[str] = []
    seen: set[str] = set()
    for item in raw_values:
        if not isinstance(item, str):
            continue
        value = " ".join(item.split()).strip()
        if len(value) < min_len:
            continue
        key = value.lower()
        if key in seen:
            continue
        seen.add(key)
        cleaned.append(value)
        if len(cleaned) >= max_items:
            break
    return cleaned


def coerce_float(value: Any) -> float | None:
    """Return a finite float, or None for anything else (NaN and infinities included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None

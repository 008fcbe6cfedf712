"""
Best-effort JSON extraction from model replies

Models wrap JSON in prose or markdown fences more often than not. Every
call site that expects structured output goes through ``extract_json`` and
supplies its own fallback value.
"""
from __future__ import annotations

import json
import re
from typing import Any, Optional, Type, TypeVar, Union

T = TypeVar("T")

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?")
_BRACKETS = {dict: ("{", "}"), list: ("[", "]")}


def strip_code_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", str(text or "")).strip()


def extract_json(
    text: Optional[str],
    expected_type: Union[Type[dict], Type[list]],
    default: T,
) -> Union[dict, list, T]:
    """Parse ``text`` as JSON of ``expected_type`` or return ``default``.

    Tries, in order: the whole reply with code fences removed, then the
    widest bracketed span of the expected kind (first opening bracket to
    last closing bracket). A reply that parses to the wrong shape counts as
    a failure.
    """
    raw = strip_code_fences(text or "")
    if not raw:
        return default

    parsed = _loads(raw)
    if isinstance(parsed, expected_type):
        return parsed

    open_char, close_char = _BRACKETS[expected_type]
    start = raw.find(open_char)
    end = raw.rfind(close_char)
    if start != -1 and end > start:
        parsed = _loads(raw[start : end + 1])
        if isinstance(parsed, expected_type):
            return parsed

    return default


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate)
    except (TypeError, ValueError):
        return None

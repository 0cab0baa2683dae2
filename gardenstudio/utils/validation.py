"""
Input validation and normalization.

Trims and bounds field lengths, filters suspicious characters while allowing
natural punctuation, and coerces numeric payload fields coming from the
design canvas.
"""

from __future__ import annotations
import math
import re
from typing import Any

# Allowlist regex: we REMOVE anything NOT in this set.
# Includes letters/numbers/space and common lightweight punctuation used in names.
_SAFE_CHARS_PATTERN = re.compile(r"[^a-zA-Z0-9\s\-\.,'()/&!]+")

# UUID validation pattern (RFC 4122 compliant)
_UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)

# Vision job ids are uuid4().hex
_JOB_ID_PATTERN = re.compile(r'^[0-9a-f]{32}$')

MAX_DESIGN_NAME_LEN = 80
MAX_PROMPT_LEN = 2000


def soft_sanitize(text: str, max_len: int = MAX_DESIGN_NAME_LEN) -> str:
    """
    Normalizes names:
    - strip whitespace
    - bound length
    - remove dangerous HTML event handlers and keywords
    - remove disallowed characters via allowlist
    - collapse double spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]

    dangerous_keywords = [
        'onerror', 'onload', 'onclick', 'onmouseover', 'onmouseout',
        'onfocus', 'onblur', 'onchange', 'onsubmit',
        'javascript:', 'data:', 'vbscript:'
    ]
    for keyword in dangerous_keywords:
        t = re.sub(re.escape(keyword), '', t, flags=re.IGNORECASE)

    t = _SAFE_CHARS_PATTERN.sub("", t)
    t = re.sub(r"\s{2,}", " ", t)
    return t.strip()


def sanitize_prompt(text: str, max_len: int = MAX_PROMPT_LEN) -> str:
    """
    Prompt text is more permissive than names:
    - strip & bound length
    - remove control chars only; keep punctuation and newlines
    - normalize repeated tabs/spaces
    """
    t = (text or "").strip()
    if not t:
        return ""
    t = t[:max_len]
    t = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", t)
    t = re.sub(r"[ \t]{2,}", " ", t)
    return t


def coerce_float(value: Any) -> float | None:
    """Return a finite float or None (rejects bools, NaN and infinities)."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def is_valid_uuid(value: str | None) -> bool:
    """
    Check if a string is a valid UUID (RFC 4122 format).

    Example:
        >>> is_valid_uuid("550e8400-e29b-41d4-a716-446655440000")
        True
        >>> is_valid_uuid("invalid")
        False
    """
    if not value or not isinstance(value, str):
        return False
    return bool(_UUID_PATTERN.match(value))


def is_valid_job_id(value: str | None) -> bool:
    """Check the shape of a vision job id before touching the job store."""
    if not value or not isinstance(value, str):
        return False
    return bool(_JOB_ID_PATTERN.match(value))

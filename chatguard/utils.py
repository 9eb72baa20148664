from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

TRUE_WORDS = {"1", "true", "yes", "on", "enable", "enabled"}
NULL_WORDS = {"", "none", "null", "off"}


def parse_value(current: Any, raw: str) -> Any:
    """Convert text typed into ``/chatguard set`` to the type of the current value.

    Raises ``ValueError`` when the text does not fit that type.
    """
    text = raw.strip()
    if isinstance(current, bool):
        return text.lower() in TRUE_WORDS
    if isinstance(current, (int, float)):
        return type(current)(text)
    if isinstance(current, list):
        items = [item.strip() for item in text.split(",") if item.strip()]
        if current and all(isinstance(item, int) for item in current):
            return [int(item) for item in items]
        return items
    if current is None:
        # Optional ids start out unset.
        return None if text.lower() in NULL_WORDS else int(text)
    return text


def make_event_id(prefix: str = "CHAT", now: dt.datetime | None = None) -> str:
    stamp = (now or dt.datetime.now(dt.timezone.utc)).strftime("%Y%m%d%H%M%S")
    return f"{prefix}-{stamp}-{uuid.uuid4().hex[:6]}"


def count_capitals(text: str) -> int:
    return sum(1 for c in text if c.isalpha() and c.isupper())


def count_letters(text: str) -> int:
    return sum(1 for c in text if c.isalpha())


def elapsed_ms(earlier: dt.datetime, later: dt.datetime) -> float:
    return (later - earlier) / dt.timedelta(milliseconds=1)

"""Application-wide identifier utilities."""

from __future__ import annotations

import re
import secrets
import threading
import time
import unicodedata

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_LAST_MILLIS = 0
_COUNTER = 0
_LOCK = threading.Lock()

ENTITY_ID_PREFIXES: dict[str, str] = {
    "restaurant": "rst",
    "hotel": "htl",
    "mall": "mal",
    "attraction": "atr",
    "school": "sch",
    "fitness": "fit",
}


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    chars: list[str] = []
    current = value
    while current:
        current, remainder = divmod(current, 36)
        chars.append(_ALPHABET[remainder])
    return "".join(reversed(chars))


def generate_cuid(length: int = 24, prefix: str = "c") -> str:
    """Generate a collision-resistant lowercase identifier.

    Layout: ``prefix + base36(millis) + base36(counter) + random``, truncated
    to ``length`` characters in total.
    """
    global _LAST_MILLIS, _COUNTER

    now_millis = int(time.time() * 1000)
    with _LOCK:
        if now_millis == _LAST_MILLIS:
            _COUNTER += 1
        else:
            _LAST_MILLIS = now_millis
            _COUNTER = 0
        counter = _COUNTER

    body_len = max(length - len(prefix), 8)
    static_part = f"{_to_base36(now_millis)}{_to_base36(counter).rjust(4, '0')}"
    random_len = max(body_len - len(static_part), 0)
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(random_len))
    return f"{prefix}{static_part}{random_part}"[: len(prefix) + body_len]


def generate_entity_id(entity_type: str) -> str:
    """Generate an id whose prefix tells operators which catalog it belongs to."""
    return generate_cuid(length=24, prefix=ENTITY_ID_PREFIXES.get(entity_type, "c"))


def slugify(*parts: str | None) -> str:
    """Build a URL slug from name/area fragments (ASCII, hyphen separated)."""
    joined = " ".join(part for part in parts if part)
    normalized = unicodedata.normalize("NFKD", joined).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug or "entity"

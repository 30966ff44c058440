"""
Token usage extraction.

Reads usage counts from provider responses without depending on an SDK type.
"""

from typing import Any


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_total_tokens(response: Any) -> int:
    """Return ``response.usage.total_tokens``, or 0 when it is unavailable.

    Accepts attribute-style SDK objects and plain dictionaries.
    """
    total = _field(_field(response, "usage"), "total_tokens")
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        return 0
    return total

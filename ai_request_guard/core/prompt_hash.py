"""
Request body hashing for log correlation.

Not a security primitive: collisions are acceptable, the hash only lets
repeated calls be grouped without storing prompt content.
"""

import json
from typing import Any


def serialize_request(body: Any) -> str:
    """Serialize a request body deterministically.

    Keys are sorted and non-ASCII text is kept as-is rather than escaped.
    """
    return json.dumps(
        body, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str
    )


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def generate_prompt_hash(content: str) -> str:
    """Compute a 32-bit rolling hash of ``content`` as a hex string.

    This is ``h = h * 31 + unit`` over UTF-16 code units, wrapped to a
    signed 32-bit integer at every step, the same arithmetic as the
    classic JavaScript string hash over ``charCodeAt``.
    """
    encoded = content.encode("utf-16-le")
    h = 0
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = _to_int32((h << 5) - h + unit)
    return format(abs(h), "x")


def hash_request(body: Any) -> str:
    return generate_prompt_hash(serialize_request(body))

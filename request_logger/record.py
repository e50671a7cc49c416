"""
Log record emitted for every request, and best-effort decoding of the body.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name!r}")


def _parse_float(literal: str) -> float:
    value = float(literal)
    if math.isinf(value):
        raise ValueError(f"number {literal} out of range")
    return value


_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def _replace_surrogates(value: Any) -> Any:
    # json.loads pairs valid surrogate escapes, so anything left is unpaired
    if isinstance(value, str):
        return _LONE_SURROGATE.sub("\ufffd", value)
    if isinstance(value, list):
        return [_replace_surrogates(item) for item in value]
    if isinstance(value, dict):
        return {_replace_surrogates(k): _replace_surrogates(v) for k, v in value.items()}
    return value


def decode_body(body: bytes) -> Any:
    """Return the parsed JSON value of body, or body as text if it is not valid JSON."""
    text = body.decode("utf-8", errors="replace")
    try:
        value = json.loads(text, parse_constant=_reject_constant, parse_float=_parse_float)
        return _replace_surrogates(value)
    except (ValueError, RecursionError):
        return text


@dataclass(frozen=True)
class LogRecord:
    method: str
    url: str
    data: Any

    def to_json(self) -> str:
        """Serialize to a single-line JSON document, keys in method, url, data order."""
        return json.dumps(
            {"method": self.method, "url": self.url, "data": self.data},
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )

"""Helpers for canonical JSON serialization used for token signing and frames."""

from __future__ import annotations

from typing import Any

import orjson

_ORJSON_OPTIONS = (
    orjson.OPT_SORT_KEYS
    | orjson.OPT_STRICT_INTEGER
    | orjson.OPT_NAIVE_UTC
    | orjson.OPT_UTC_Z
)


def canonical_dumps(payload: Any) -> bytes:
    """Return canonical JSON bytes with sorted keys and stable formatting."""
    return orjson.dumps(payload, option=_ORJSON_OPTIONS)


def dumps_text(payload: Any) -> str:
    return orjson.dumps(payload, option=orjson.OPT_NAIVE_UTC | orjson.OPT_UTC_Z).decode()
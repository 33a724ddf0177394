# src/promptbatch/core/canonical.py
"""
Deterministic JSON for task fingerprints.

Config dicts and field selections are normalized to plain JSON values
(numpy scalars, pandas timestamps and missing markers included) and then
serialized with RFC 8785 / JCS via the rfc8785 package, so the same
inputs always produce the same config hash regardless of key order.

Fingerprinting is strict: NaN and Infinity raise. Output rows go
through the lenient variant, where they become null.
"""

import hashlib
import math
from typing import Any

import numpy as np
import pandas as pd
import rfc8785

# Recorded in metadata.json so old hashes can be recognised after a format change
CANONICAL_VERSION = "sha256-rfc8785-v1"


def _scalar(value: Any, *, strict: bool) -> Any:
    if isinstance(value, (float, np.floating)):
        if math.isfinite(value):
            return float(value)
        if strict:
            raise ValueError(f"Cannot fingerprint non-finite number {value!r}")
        return None
    if value is None or isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.ndarray):
        return [_scalar(item, strict=strict) for item in value.tolist()]
    if isinstance(value, pd.Timestamp):
        # Naive timestamps are taken as UTC
        utc = value.tz_localize("UTC") if value.tz is None else value.tz_convert("UTC")
        return utc.isoformat()
    if value is pd.NA or value is pd.NaT:
        return None
    return value


def _plain(data: Any, *, strict: bool) -> Any:
    if isinstance(data, dict):
        return {str(key): _plain(item, strict=strict) for key, item in data.items()}
    if isinstance(data, (list, tuple)):
        return [_plain(item, strict=strict) for item in data]
    return _scalar(data, strict=strict)


def canonical_json(obj: Any) -> str:
    """JCS text of obj.

    Raises:
        ValueError: obj contains NaN or Infinity.
        TypeError: obj contains a value JSON cannot represent.
    """
    return rfc8785.dumps(_plain(obj, strict=True)).decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of canonical_json(obj)."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()


def to_json_safe(obj: Any) -> Any:
    """Plain JSON values for output rows; non-finite numbers become None."""
    return _plain(obj, strict=False)

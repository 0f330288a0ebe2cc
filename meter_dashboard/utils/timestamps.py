# meter_dashboard/utils/timestamps.py
"""
Timestamp normalization for event rows.

Devices and recorders store timestamps in several shapes: epoch seconds,
epoch milliseconds (numbers or numeric strings), compact ``yyyyMMdd_HHmmss``
strings and ISO strings. Everything here is pure and total: an unparseable
value gives ``None``, never an exception.
"""
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pandas as pd

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# numbers below this are epoch seconds, above are milliseconds
SECONDS_THRESHOLD = 1e11
# numeric strings up to this many characters are epoch seconds
SECONDS_MAX_DIGITS = 10
# longer digit strings are out of datetime range anyway
MAX_DIGITS = 20

COMPACT_RE = re.compile(r"^\d{8}_\d{6}$")
CANONICAL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")
INTEGER_RE = re.compile(r"^-?\d+$")

# pandas resolves these against the wall clock
_RELATIVE_WORDS = {"now", "today", "tomorrow", "yesterday"}


def _from_epoch_ms(ms: float) -> Optional[datetime]:
    if math.isnan(ms) or math.isinf(ms):
        return None
    try:
        return EPOCH + timedelta(milliseconds=ms)
    except OverflowError:
        return None


def _from_number(value: float) -> Optional[datetime]:
    if math.isnan(value):
        return None
    ms = value * 1000 if abs(value) < SECONDS_THRESHOLD else value
    return _from_epoch_ms(ms)


def _from_compact(s: str) -> Optional[datetime]:
    try:
        return datetime.strptime(s, "%Y%m%d_%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _from_canonical(s: str) -> Optional[datetime]:
    # covers years pandas cannot represent
    try:
        return datetime.strptime(s, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _from_generic_string(s: str) -> Optional[datetime]:
    if not s or s.lower() in _RELATIVE_WORDS:
        return None
    try:
        ts = pd.Timestamp(s)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.to_pydatetime(warn=False)


def _coerce_number(value: Any) -> Optional[datetime]:
    try:
        return _from_number(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def normalize_timestamp(value: Any) -> Optional[datetime]:
    """Return the UTC instant ``value`` denotes, or None."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc)
        except OverflowError:
            return None

    if isinstance(value, str):
        s = value.strip()
        if COMPACT_RE.match(s):
            return _from_compact(s)
        if CANONICAL_RE.match(s):
            return _from_canonical(s)
        if INTEGER_RE.match(s):
            if len(s.lstrip("-")) > MAX_DIGITS:
                return None
            n = int(s)
            ms = n * 1000 if len(s) <= SECONDS_MAX_DIGITS else n
            return _from_epoch_ms(ms)
        return _from_generic_string(s)

    # int, float, Decimal and other numeric wrappers from the drivers
    return _coerce_number(value)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Canonical form: UTC, millisecond precision, ``Z`` suffix."""
    if dt is None:
        return None
    dt = dt.astimezone(timezone.utc)
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"
        f"T{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{dt.microsecond // 1000:03d}Z"
    )


def parse_timestamp_to_iso(value: Any) -> Optional[str]:
    return to_iso(normalize_timestamp(value))

# meter_dashboard/services/query_builder.py
"""
Builds parameterized WHERE clauses for the relational event tables.

Every user-supplied value goes through ``QueryParts.bind`` and ends up as a
named bind parameter (``:p1``, ``:p2``, ...). Nothing the caller sends is
pasted into SQL text.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

from ..errors import EmptyResult, FilterValidationError
from ..utils.timestamps import normalize_timestamp

DETECTION_TYPES = ("OCR", "faces", "tv_channel", "object_detection", "content_detection")


@dataclass
class QueryParts:
    fragments: List[str] = field(default_factory=list)
    values: Dict[str, Any] = field(default_factory=dict)
    index: int = 1

    def bind(self, value: Any) -> str:
        name = f"p{self.index}"
        self.values[name] = value
        self.index += 1
        return f":{name}"

    def add(self, fragment: str) -> None:
        self.fragments.append(fragment)

    def where_clause(self) -> str:
        if not self.fragments:
            return ""
        return "WHERE " + " AND ".join(self.fragments)

    def paginate(self, limit: int, offset: int) -> str:
        """Append LIMIT/OFFSET binds; returns the SQL tail."""
        return f"LIMIT {self.bind(limit)} OFFSET {self.bind(offset)}"


@dataclass
class ImageEventFilter:
    device_id: Optional[str] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    detection_types: Sequence[str] = ()


@dataclass
class AudioEventFilter:
    meter_ids: Sequence[str] = ()
    start: Optional[str] = None
    end: Optional[str] = None
    type: Optional[int] = None


def split_csv_param(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _parse_time(value: str) -> Optional[time]:
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    return None


def day_bounds(day: str, start_time: Optional[str] = None, end_time: Optional[str] = None,
               tz: str = "UTC") -> tuple:
    """
    Inclusive epoch-second bounds for a calendar day in ``tz``.

    Without times the whole day is covered (00:00:00.000 to 23:59:59.999).
    A start time begins at second 0 of that minute, an end time runs to
    .999 of its last second.
    """
    errors = {}
    try:
        d = date.fromisoformat(day)
    except ValueError:
        d = None
        errors["date"] = f"invalid date {day!r}, expected YYYY-MM-DD"

    start_t = time(0, 0, 0)
    end_t = time(23, 59, 59, 999000)
    if start_time:
        parsed = _parse_time(start_time)
        if parsed is None:
            errors["startTime"] = f"invalid time {start_time!r}, expected HH:MM"
        else:
            start_t = parsed
    if end_time:
        parsed = _parse_time(end_time)
        if parsed is None:
            errors["endTime"] = f"invalid time {end_time!r}, expected HH:MM"
        else:
            if len(end_time.split(":")) == 2:
                parsed = parsed.replace(second=59)
            end_t = parsed.replace(microsecond=999000)
    if errors:
        raise FilterValidationError(errors)

    zone = ZoneInfo(tz)
    start = datetime.combine(d, start_t, tzinfo=zone)
    end = datetime.combine(d, end_t, tzinfo=zone)
    if start > end:
        raise FilterValidationError({"startTime": "start time is after end time"})
    return int(start.timestamp() // 1), int(end.timestamp() // 1)


def build_image_event_query(flt: ImageEventFilter, tz: str = "UTC") -> QueryParts:
    q = QueryParts()

    if flt.device_id and flt.device_id.strip():
        pattern = "%" + escape_like(flt.device_id.strip()) + "%"
        q.add(f"LOWER(device_id) LIKE LOWER({q.bind(pattern)})")

    if flt.date:
        start_s, end_s = day_bounds(flt.date, flt.start_time, flt.end_time, tz=tz)
        q.add(f"timestamp >= {q.bind(start_s)}")
        q.add(f"timestamp <= {q.bind(end_s)}")
    elif flt.start_time or flt.end_time:
        raise FilterValidationError({"date": "a date is required when filtering by time"})

    if flt.detection_types:
        unknown = [t for t in flt.detection_types if t not in DETECTION_TYPES]
        if unknown:
            raise FilterValidationError({
                "detectionTypes": f"unknown detection types: {', '.join(unknown)}"
            })
        conds = []
        for t in dict.fromkeys(flt.detection_types):
            key = q.bind(t)
            conds.append(
                f"(jsonb_typeof(detections -> CAST({key} AS text)) = 'array'"
                f" AND jsonb_array_length(detections -> CAST({key} AS text)) > 0)"
            )
        q.add("(" + " OR ".join(conds) + ")")

    return q


def resolve_meter_ids(requested: Sequence[str], allowlist: Optional[Sequence[str]]) -> List[str]:
    """
    Intersect requested meter ids with the server allow-list.

    No allow-list configured: the request passes through unchanged.
    Otherwise an empty request means "every allowed meter". An empty
    intersection raises EmptyResult.
    """
    requested = list(dict.fromkeys(requested))
    if allowlist is None:
        return requested
    allowed = set(allowlist)
    if not requested:
        resolved = list(dict.fromkeys(allowlist))
    else:
        resolved = [m for m in requested if m in allowed]
    if not resolved:
        raise EmptyResult()
    return resolved


def build_audio_event_query(flt: AudioEventFilter, allowlist: Optional[Sequence[str]] = None) -> QueryParts:
    errors = {}
    start_dt = end_dt = None
    if flt.start:
        start_dt = normalize_timestamp(flt.start)
        if start_dt is None:
            errors["start"] = f"invalid timestamp {flt.start!r}"
    if flt.end:
        end_dt = normalize_timestamp(flt.end)
        if end_dt is None:
            errors["end"] = f"invalid timestamp {flt.end!r}"
    if start_dt and end_dt and start_dt > end_dt:
        errors["start"] = "start is after end"
    if errors:
        raise FilterValidationError(errors)

    meter_ids = resolve_meter_ids(flt.meter_ids, allowlist)

    q = QueryParts()
    if meter_ids:
        q.add(f"device_id = ANY({q.bind(meter_ids)})")
    # ts is stored as epoch seconds
    if start_dt:
        q.add(f"ts >= {q.bind(int(start_dt.timestamp() // 1))}")
    if end_dt:
        q.add(f"ts <= {q.bind(int(end_dt.timestamp() // 1))}")
    if flt.type is not None:
        q.add(f"type = {q.bind(flt.type)}")
    return q

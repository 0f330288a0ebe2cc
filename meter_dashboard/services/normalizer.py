# meter_dashboard/services/normalizer.py
import json
import math
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from .query_builder import DETECTION_TYPES
from ..utils.timestamps import parse_timestamp_to_iso

# first usable value wins
ID_CANDIDATES = ("id", "pk", "pk_id", "pk1", "meter_id")
METER_TS_CANDIDATES = (
    "timestamp_meter",
    "timestamp_meter_iso",
    "timestamp_meter_epoch",
    "ts_meter",
    "meter_ts",
    "timestamp",
)
RECORDER_TS_CANDIDATES = ("timestamp_recorder", "ts_recorder")


def coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(f) or math.isinf(f) else f


def str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def coerce_int(value: Any) -> Optional[int]:
    f = coerce_float(value)
    return int(f) if f is not None else None


def _first_present(item: Mapping[str, Any], keys) -> Any:
    for k in keys:
        v = item.get(k)
        if v is not None:
            return v
    return None


def _load_json(value: Any) -> Any:
    # jsonb comes back as text through text() queries
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return None
    return value


def normalize_detections(raw: Any) -> Dict[str, list]:
    d = _load_json(raw)
    if not isinstance(d, Mapping):
        d = {}
    return {t: list(d[t]) if isinstance(d.get(t), list) else [] for t in DETECTION_TYPES}


def map_image_event_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    timestamp = coerce_int(row.get("timestamp"))
    return {
        "device_id": str_or_none(row.get("device_id")),
        "timestamp": timestamp,
        "timestamp_iso": parse_timestamp_to_iso(timestamp),
        "status": str_or_none(row.get("status")),
        "detections": normalize_detections(row.get("detections")),
        "processed_s3_key": str_or_none(row.get("processed_s3_key")),
    }


def map_audio_event_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    details = _load_json(row.get("details"))
    ts_raw = row.get("ts")
    return {
        "id": row.get("id"),
        "device_id": str_or_none(row.get("device_id")),
        "ts_raw": ts_raw,
        "ts_iso": parse_timestamp_to_iso(ts_raw),
        "type": coerce_int(row.get("type")),
        "details": details if isinstance(details, Mapping) else None,
    }


def synthesize_item_id(item: Mapping[str, Any], raw_ts: Any = None) -> str:
    """
    List key for a stored item. The native ``_id`` wins; otherwise base id
    plus raw timestamp (or a random suffix). Only used for de-duplication,
    never as a storage key.
    """
    if item.get("_id") is not None:
        return str(item["_id"])
    base_id = _first_present(item, ID_CANDIDATES)
    if base_id is None:
        return uuid4().hex[:10]
    suffix = raw_ts if raw_ts is not None else uuid4().hex[:7]
    return f"{base_id}_{suffix}"


def _json_safe(item: Mapping[str, Any]) -> Dict[str, Any]:
    out = dict(item)
    if "_id" in out:
        out["_id"] = str(out["_id"])
    return out


def normalize_audio_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    raw_ts = _first_present(item, METER_TS_CANDIDATES)
    recorder_ts = _first_present(item, RECORDER_TS_CANDIDATES)
    meter_id = _first_present(item, ("meter_id", "device_id"))
    return {
        "id": synthesize_item_id(item, raw_ts),
        "meter_id": str_or_none(meter_id),
        "fp_file": str_or_none(item.get("fp_file")),
        "channel": str_or_none(item.get("channel")),
        "hit_score": coerce_float(item.get("hit_score")),
        "recorder_id": str_or_none(item.get("recorder_id")),
        "source_type": str_or_none(item.get("source_type")),
        "timestamp_meter_raw": raw_ts,
        "timestamp_meter_iso": parse_timestamp_to_iso(raw_ts),
        "timestamp_recorder_raw": recorder_ts,
        "timestamp_recorder_iso": parse_timestamp_to_iso(recorder_ts),
        "raw": _json_safe(item),
    }

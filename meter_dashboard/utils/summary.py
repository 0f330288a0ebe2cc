# meter_dashboard/utils/summary.py
from typing import Dict, List

from ..services.query_builder import DETECTION_TYPES


def summarize_image_events(events: List[Dict]) -> Dict:
    """Per detection type: how many events carry at least one result, and the total results."""
    events_with = {t: 0 for t in DETECTION_TYPES}
    results = {t: 0 for t in DETECTION_TYPES}
    statuses = {}
    devices = set()
    for e in events:
        devices.add(e.get("device_id"))
        st = e.get("status") or "unknown"
        statuses[st] = statuses.get(st, 0) + 1
        for t, items in (e.get("detections") or {}).items():
            if t in results and items:
                events_with[t] += 1
                results[t] += len(items)
    return {
        "total_events": len(events),
        "devices": len(devices),
        "events_with_detection": events_with,
        "detection_results": results,
        "statuses": statuses,
    }

# meter_dashboard/services/report_service.py
import json
import pandas as pd
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from io import BytesIO
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from .query_builder import DETECTION_TYPES
from ..utils.timestamps import parse_timestamp_to_iso

DETECTION_SEPARATOR = " | "

IMAGE_EVENT_COLUMNS = [
    ("Device ID", "device_id"),
    ("Timestamp", "timestamp_iso"),
    ("Status", "status"),
    ("OCR", "OCR"),
    ("Faces", "faces"),
    ("TV Channel", "tv_channel"),
    ("Object Detection", "object_detection"),
    ("Content Detection", "content_detection"),
    ("Processed Image URL", "processed_s3_key"),
]

AUDIO_EVENT_COLUMNS = ["device_id", "ts_iso", "type", "details"]


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def flatten_detection(items: Optional[List[Any]]) -> str:
    if not items:
        return ""
    parts = []
    for item in items:
        if isinstance(item, str):
            parts.append(item)
        else:
            parts.append(json.dumps(item, separators=(",", ":"), default=str))
    return DETECTION_SEPARATOR.join(parts)


def _to_csv(rows: List[Dict[str, str]], columns: List[str]) -> bytes:
    # QUOTE_MINIMAL: cells holding a comma, quote or newline get quoted, quotes doubled
    df = pd.DataFrame(rows, columns=columns, dtype=object)
    return df.to_csv(index=False, lineterminator="\r\n").encode("utf-8")


def make_image_events_csv(events: List[Dict]) -> bytes:
    rows = []
    for e in events:
        detections = e.get("detections") or {}
        row = {}
        for header, key in IMAGE_EVENT_COLUMNS:
            if key in DETECTION_TYPES:
                row[header] = flatten_detection(detections.get(key))
            elif key == "timestamp_iso":
                row[header] = _cell(e.get(key) or parse_timestamp_to_iso(e.get("timestamp")))
            else:
                row[header] = _cell(e.get(key))
        rows.append(row)
    return _to_csv(rows, [h for h, _ in IMAGE_EVENT_COLUMNS])


def make_audio_events_csv(events: List[Dict]) -> bytes:
    rows = []
    for e in events:
        rows.append({
            "device_id": _cell(e.get("device_id")),
            "ts_iso": _cell(e.get("ts_iso")),
            "type": _cell(e.get("type")),
            "details": json.dumps(e.get("details") or {}, separators=(",", ":"), default=str),
        })
    return _to_csv(rows, AUDIO_EVENT_COLUMNS)


def export_filename(prefix: str, ext: str = "csv", today: Optional[date] = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"{prefix}-{today.isoformat()}.{ext}"


def make_pdf_report(events: List[Dict], summary: Dict, filters: Dict = None) -> bytes:
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    W, H = letter
    y = H - 50

    c.setFont("Helvetica-Bold", 16)
    c.drawString(50, y, "Meter Image Events Report")
    y -= 30

    c.setFont("Helvetica", 10)
    c.drawString(50, y, f"Generated: {datetime.now(timezone.utc).isoformat()}")
    y -= 14
    active = {k: v for k, v in (filters or {}).items() if v}
    if active:
        c.drawString(50, y, "Filters: " + ", ".join(f"{k}={v}" for k, v in active.items())[:140])
        y -= 14
    y -= 6

    c.setFont("Helvetica-Bold", 12)
    c.drawString(50, y, "Summary")
    y -= 16
    c.setFont("Helvetica", 10)
    c.drawString(60, y, f"Events: {summary.get('total_events')}")
    y -= 12
    c.drawString(60, y, f"Devices: {summary.get('devices')}")
    y -= 14

    c.drawString(60, y, "Events with detections (results):")
    y -= 12
    results = summary.get("detection_results") or {}
    for k, v in (summary.get("events_with_detection") or {}).items():
        c.drawString(70, y, f"{k}: {v} ({results.get(k, 0)})")
        y -= 12
        if y < 80:
            c.showPage()
            y = H - 50

    y -= 10
    c.setFont("Helvetica-Bold", 11)
    c.drawString(50, y, "Events (latest 50):")
    y -= 16
    c.setFont("Helvetica", 9)
    for e in events[:50]:
        detections = e.get("detections") or {}
        found = ",".join(t for t, items in detections.items() if items) or "-"
        s = f"{e.get('timestamp_iso') or ''} | {e.get('device_id')} | {e.get('status') or ''} | {found}"
        if y < 60:
            c.showPage()
            y = H - 50
        c.drawString(50, y, s[:150])
        y -= 12

    c.showPage()
    c.save()
    pdf = buffer.getvalue()
    buffer.close()
    return pdf

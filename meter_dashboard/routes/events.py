# meter_dashboard/routes/events.py
import math
from fastapi import APIRouter, Depends, Query, Response
from typing import Dict, Optional
from ..config import Settings
from ..db import get_settings
from ..schemas import ImageEventPage
from ..services.auth import current_user
from ..services.image_events import ImageEventStore, get_image_event_store
from ..services.query_builder import ImageEventFilter, split_csv_param
from ..services.report_service import export_filename, make_image_events_csv, make_pdf_report
from ..utils.summary import summarize_image_events

router = APIRouter(prefix="/api", tags=["image-events"])


def image_event_filter(
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    date: Optional[str] = Query(default=None),
    start_time: Optional[str] = Query(default=None, alias="startTime"),
    end_time: Optional[str] = Query(default=None, alias="endTime"),
    detection_types: Optional[str] = Query(default=None, alias="detectionTypes"),
) -> ImageEventFilter:
    return ImageEventFilter(
        device_id=device_id,
        date=date or None,
        start_time=start_time or None,
        end_time=end_time or None,
        detection_types=split_csv_param(detection_types),
    )


@router.get("/events", response_model=ImageEventPage)
async def list_image_events(
    flt: ImageEventFilter = Depends(image_event_filter),
    page: int = Query(default=1, ge=1),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    offset: Optional[int] = Query(default=None, ge=0),
    store: ImageEventStore = Depends(get_image_event_store),
    cfg: Settings = Depends(get_settings),
    user: Dict = Depends(current_user),
):
    """
    One page of meter image events, newest first.
    - `offset`, when given, wins over `page`.
    - `total` counts every row matching the filters.
    """
    limit = limit or cfg.EVENTS_PAGE_SIZE
    if offset is None:
        offset = (page - 1) * limit
    else:
        page = offset // limit + 1

    items, total = await store.fetch_page(flt, limit, offset)
    return {
        "items": items,
        "total": total,
        "page": page,
        "limit": limit,
        "offset": offset,
        "total_pages": max(1, math.ceil(total / limit)),
    }


@router.get("/events/export-csv")
async def export_image_events(
    flt: ImageEventFilter = Depends(image_event_filter),
    format: str = Query(default="csv", pattern="^(csv|pdf)$"),
    store: ImageEventStore = Depends(get_image_event_store),
    cfg: Settings = Depends(get_settings),
    user: Dict = Depends(current_user),
):
    """
    Export every matching image event (up to EXPORT_MAX_ROWS) as CSV, or a
    PDF summary with `format=pdf`.
    """
    events = await store.fetch_all(flt, cfg.EXPORT_MAX_ROWS)

    if format == "pdf":
        summary = summarize_image_events(events)
        filters = {
            "deviceId": flt.device_id,
            "date": flt.date,
            "startTime": flt.start_time,
            "endTime": flt.end_time,
            "detectionTypes": ",".join(flt.detection_types),
        }
        pdf_bytes = make_pdf_report(events, summary, filters)
        return Response(
            content=pdf_bytes,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{export_filename("meter-events", "pdf")}"'},
        )

    csv_bytes = make_image_events_csv(events)
    return Response(
        content=csv_bytes,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("meter-events")}"'},
    )

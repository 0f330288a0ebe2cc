# meter_dashboard/routes/audio_events.py
from fastapi import APIRouter, Depends, Query, Response
from typing import Dict, Optional
from ..config import Settings
from ..db import get_settings
from ..schemas import AudioEventPage, AudioScanAll, AudioScanPage
from ..services.audio_events import AudioEventStore, AudioItemStore, get_audio_event_store, get_audio_item_store
from ..services.auth import current_user
from ..services.query_builder import AudioEventFilter, split_csv_param
from ..services.report_service import export_filename, make_audio_events_csv
from ..services.scanner import scan_all, scan_page

router = APIRouter(prefix="/api/audio-events", tags=["audio-events"])


def audio_event_filter(
    meter_id: Optional[str] = Query(default=None),
    start: Optional[str] = Query(default=None),
    end: Optional[str] = Query(default=None),
    type: Optional[int] = Query(default=None),
) -> AudioEventFilter:
    return AudioEventFilter(
        meter_ids=split_csv_param(meter_id),
        start=start or None,
        end=end or None,
        type=type,
    )


@router.get("", response_model=AudioEventPage)
async def list_audio_events(
    flt: AudioEventFilter = Depends(audio_event_filter),
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    count: bool = Query(default=False),
    store: AudioEventStore = Depends(get_audio_event_store),
    user: Dict = Depends(current_user),
):
    """
    Audio events from the relational table, newest first.
    `meter_id` is restricted to the server allow-list when one is set.
    """
    items, total = await store.fetch_page(flt, limit, offset, with_count=count)
    return {"items": items, "total": total}


@router.get("/export-csv")
async def export_audio_events(
    flt: AudioEventFilter = Depends(audio_event_filter),
    store: AudioEventStore = Depends(get_audio_event_store),
    cfg: Settings = Depends(get_settings),
    user: Dict = Depends(current_user),
):
    events = await store.fetch_all(flt, cfg.EXPORT_MAX_ROWS)
    return Response(
        content=make_audio_events_csv(events),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename("audio-events")}"'},
    )


@router.get("/scan", response_model=None)
async def scan_audio_items(
    limit: int = Query(default=50, ge=1, le=1000),
    start: Optional[str] = Query(default=None),
    fetch_all: bool = Query(default=False, alias="fetchAll"),
    store: AudioItemStore = Depends(get_audio_item_store),
    cfg: Settings = Depends(get_settings),
    user: Dict = Depends(current_user),
):
    """
    Audio items straight from the key-value store.
    - default: one page of `limit` items plus `nextStart` to resume from.
    - `fetchAll=true`: every item up to MAX_ITEMS_TO_FETCH.
    """
    if not fetch_all:
        page = await scan_page(store.scan, start, limit)
        return AudioScanPage(items=page.items, nextStart=page.next_start)

    result = await scan_all(store.scan, chunk_size=cfg.SCAN_CHUNK_SIZE, max_items=cfg.MAX_ITEMS_TO_FETCH)
    if result.truncated:
        note = (f"Stopped at MAX_ITEMS_TO_FETCH={cfg.MAX_ITEMS_TO_FETCH} items; more items exist "
                f"(set MAX_ITEMS_TO_FETCH=0 to disable the cap).")
    elif cfg.MAX_ITEMS_TO_FETCH > 0:
        note = f"Returned all items (cap MAX_ITEMS_TO_FETCH={cfg.MAX_ITEMS_TO_FETCH} not reached)."
    else:
        note = "Returned all items (no cap set)."
    return AudioScanAll(
        items=result.items,
        count=len(result.items),
        pagesFetched=result.pages_fetched,
        truncated=result.truncated,
        note=note,
    )

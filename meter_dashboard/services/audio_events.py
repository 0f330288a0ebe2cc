# meter_dashboard/services/audio_events.py
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from fastapi import Depends
from pymongo.errors import PyMongoError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..db import Stores, get_stores
from ..errors import EmptyResult, FilterValidationError, UpstreamStoreError
from .normalizer import map_audio_event_row
from .query_builder import AudioEventFilter, build_audio_event_query
from .scanner import ScanPage

logger = logging.getLogger(__name__)

COLUMNS = "id, device_id, ts, type, details"


class AudioEventStore:
    """Read access to the relational ``meter_audio_events`` table."""

    def __init__(self, engine: AsyncEngine, allowlist: Optional[Sequence[str]] = None):
        self.engine = engine
        self.allowlist = allowlist

    async def _fetch(self, sql: str, values: Dict) -> List[Dict]:
        try:
            async with self.engine.connect() as conn:
                res = await conn.execute(text(sql), values)
                return [dict(r) for r in res.mappings()]
        except SQLAlchemyError as exc:
            raise UpstreamStoreError(f"meter_audio_events query failed: {exc}") from exc

    async def fetch_page(self, flt: AudioEventFilter, limit: int, offset: int,
                         with_count: bool = False) -> Tuple[List[Dict], Optional[int]]:
        try:
            q = build_audio_event_query(flt, self.allowlist)
        except EmptyResult:
            logger.info("meter filter %s matches nothing in the allow-list", list(flt.meter_ids))
            return [], (0 if with_count else None)

        where = q.where_clause()
        count_values = dict(q.values)
        tail = q.paginate(limit, offset)
        rows = await self._fetch(
            f"SELECT {COLUMNS} FROM meter_audio_events {where} ORDER BY ts DESC {tail}",
            q.values,
        )
        total = None
        if with_count:
            count = await self._fetch(
                f"SELECT CAST(COUNT(*) AS integer) AS count FROM meter_audio_events {where}",
                count_values,
            )
            total = int(count[0]["count"]) if count else 0
        return [map_audio_event_row(r) for r in rows], total

    async def fetch_all(self, flt: AudioEventFilter, max_rows: int) -> List[Dict]:
        try:
            q = build_audio_event_query(flt, self.allowlist)
        except EmptyResult:
            return []
        where = q.where_clause()
        rows = await self._fetch(
            f"SELECT {COLUMNS} FROM meter_audio_events {where} ORDER BY ts DESC LIMIT {q.bind(max_rows)}",
            q.values,
        )
        return [map_audio_event_row(r) for r in rows]


class AudioItemStore:
    """
    Key-value view of audio events: a document collection read in ``_id``
    order, one page at a time. ``scan`` is the primitive the scanner drives.
    """

    def __init__(self, collection):
        self.collection = collection

    async def scan(self, start_key: Optional[Dict[str, Any]], limit: int) -> ScanPage:
        if start_key is not None and "_id" not in start_key:
            raise FilterValidationError({"start": "malformed cursor"})
        query = {"_id": {"$gt": start_key["_id"]}} if start_key else {}
        try:
            cursor = self.collection.find(query).sort("_id", 1).limit(limit)
            docs = await cursor.to_list(length=limit)
        except PyMongoError as exc:
            raise UpstreamStoreError(f"audio item scan failed: {exc}") from exc
        last_key = {"_id": docs[-1]["_id"]} if docs and len(docs) >= limit else None
        return ScanPage(items=docs, last_key=last_key)


def get_audio_event_store(stores: Stores = Depends(get_stores)) -> AudioEventStore:
    return AudioEventStore(stores.engine, allowlist=stores.settings.meter_allowlist)


def get_audio_item_store(stores: Stores = Depends(get_stores)) -> AudioItemStore:
    return AudioItemStore(stores.audio_items)

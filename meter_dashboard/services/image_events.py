# meter_dashboard/services/image_events.py
from typing import Dict, List, Tuple
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..db import Stores, get_stores
from ..errors import UpstreamStoreError
from .normalizer import map_image_event_row
from .query_builder import ImageEventFilter, build_image_event_query

COLUMNS = "device_id, timestamp, status, detections, processed_s3_key"


class ImageEventStore:
    """Read access to ``meter_image_events``."""

    def __init__(self, engine: AsyncEngine, tz: str = "UTC"):
        self.engine = engine
        self.tz = tz

    async def _fetch(self, sql: str, values: Dict) -> List[Dict]:
        try:
            async with self.engine.connect() as conn:
                res = await conn.execute(text(sql), values)
                return [dict(r) for r in res.mappings()]
        except SQLAlchemyError as exc:
            raise UpstreamStoreError(f"meter_image_events query failed: {exc}") from exc

    async def fetch_page(self, flt: ImageEventFilter, limit: int, offset: int) -> Tuple[List[Dict], int]:
        q = build_image_event_query(flt, tz=self.tz)
        where = q.where_clause()
        count_values = dict(q.values)
        tail = q.paginate(limit, offset)

        rows = await self._fetch(
            f"SELECT {COLUMNS} FROM meter_image_events {where} ORDER BY timestamp DESC {tail}",
            q.values,
        )
        count = await self._fetch(
            f"SELECT CAST(COUNT(*) AS integer) AS count FROM meter_image_events {where}",
            count_values,
        )
        total = int(count[0]["count"]) if count else 0
        return [map_image_event_row(r) for r in rows], total

    async def fetch_all(self, flt: ImageEventFilter, max_rows: int) -> List[Dict]:
        q = build_image_event_query(flt, tz=self.tz)
        where = q.where_clause()
        tail = f"LIMIT {q.bind(max_rows)}"
        rows = await self._fetch(
            f"SELECT {COLUMNS} FROM meter_image_events {where} ORDER BY timestamp DESC {tail}",
            q.values,
        )
        return [map_image_event_row(r) for r in rows]


def get_image_event_store(stores: Stores = Depends(get_stores)) -> ImageEventStore:
    return ImageEventStore(stores.engine, tz=stores.settings.DASHBOARD_TZ)

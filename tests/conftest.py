# ==============================================
# Pytest configuration and shared fixtures
# ==============================================
#
# Store fakes stand in for Postgres and the document store:
# - FakeEngine: records every SQL statement + binds, replays queued results
# - FakeImageEventStore: filters raw rows in Python, validates through the
#   real query builder
# - FakeKV: a key-value table served page by page
# - FakeUserStore: in-memory users keyed by email
# ==============================================

from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from meter_dashboard.errors import ConflictError
from meter_dashboard.main import app
from meter_dashboard.services.auth import current_user
from meter_dashboard.services.normalizer import map_image_event_row
from meter_dashboard.services.query_builder import build_image_event_query, day_bounds
from meter_dashboard.services.scanner import ScanPage


class FakeMappings:
    def __init__(self, rows):
        self.rows = rows

    def __iter__(self):
        return iter(self.rows)

    def first(self):
        return self.rows[0] if self.rows else None

    def one(self):
        assert len(self.rows) == 1
        return self.rows[0]


class FakeResult:
    def __init__(self, rows):
        self.rows = rows

    def mappings(self):
        return FakeMappings(self.rows)


class FakeConnection:
    def __init__(self, engine):
        self.engine = engine

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement, params=None):
        self.engine.calls.append((str(statement), dict(params or {})))
        result = self.engine.results.pop(0) if self.engine.results else []
        if isinstance(result, Exception):
            raise result
        return FakeResult(result)


class FakeEngine:
    def __init__(self, results: Optional[List[Any]] = None):
        self.results = list(results or [])
        self.calls = []

    def connect(self):
        return FakeConnection(self)

    def begin(self):
        return FakeConnection(self)


class FakeImageEventStore:
    def __init__(self, rows: List[Dict]):
        self.rows = rows

    def _matching(self, flt):
        build_image_event_query(flt)
        out = []
        for r in self.rows:
            if flt.device_id and flt.device_id.lower() not in r["device_id"].lower():
                continue
            if flt.date:
                lo, hi = day_bounds(flt.date, flt.start_time, flt.end_time)
                if not lo <= r["timestamp"] <= hi:
                    continue
            if flt.detection_types and not any(r["detections"].get(t) for t in flt.detection_types):
                continue
            out.append(r)
        return sorted(out, key=lambda r: r["timestamp"], reverse=True)

    async def fetch_page(self, flt, limit, offset):
        rows = self._matching(flt)
        return [map_image_event_row(r) for r in rows[offset:offset + limit]], len(rows)

    async def fetch_all(self, flt, max_rows):
        return [map_image_event_row(r) for r in self._matching(flt)[:max_rows]]


class FakeKV:
    """Serves ``items`` in order; the resume key is the next position."""

    def __init__(self, items: List[Dict]):
        self.items = items
        self.requests = []

    async def scan(self, start_key, limit):
        pos = start_key["pos"] if start_key else 0
        self.requests.append((pos, limit))
        chunk = self.items[pos:pos + limit]
        end = pos + len(chunk)
        return ScanPage(items=chunk, last_key={"pos": end} if end < len(self.items) else None)


class FakeUserStore:
    def __init__(self):
        self.users = {}

    async def get_by_email(self, email):
        return self.users.get(email)

    async def create(self, email, name, password_hash):
        if email in self.users:
            raise ConflictError("Email already registered")
        user = {"id": len(self.users) + 1, "email": email, "name": name, "password_hash": password_hash}
        self.users[email] = user
        return {k: v for k, v in user.items() if k != "password_hash"}


def detections(**found):
    base = {"OCR": [], "faces": [], "tv_channel": [], "object_detection": [], "content_detection": []}
    base.update(found)
    return base


@pytest.fixture
def image_rows():
    return [
        {
            "device_id": "D1",
            "timestamp": 1700000000,
            "status": "ok",
            "detections": detections(OCR=["X"]),
            "processed_s3_key": None,
        },
    ]


@pytest.fixture
def client():
    app.dependency_overrides.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def signed_in(client):
    app.dependency_overrides[current_user] = lambda: {"id": "1", "email": "a@example.com", "name": None}
    return client

# meter_dashboard/services/scanner.py
"""
Cursor pagination over a key-value scan.

The store is reached through a single primitive::

    async def scan(start_key: dict | None, limit: int) -> ScanPage

which returns one page of raw items plus the key to resume from (None once
the scan is exhausted). Pages depend on the previous page's key, so they
are always fetched one after another.
"""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from bson import json_util
from bson.errors import BSONError

from ..errors import FilterValidationError
from .normalizer import normalize_audio_item

logger = logging.getLogger(__name__)


@dataclass
class ScanPage:
    items: List[Dict[str, Any]]
    last_key: Optional[Dict[str, Any]] = None


@dataclass
class PageResult:
    items: List[Dict[str, Any]]
    next_start: Optional[str] = None


@dataclass
class ScanAllResult:
    items: List[Dict[str, Any]] = field(default_factory=list)
    pages_fetched: int = 0
    truncated: bool = False


ScanFn = Callable[[Optional[Dict[str, Any]], int], Awaitable[ScanPage]]


def encode_cursor(key: Optional[Dict[str, Any]]) -> Optional[str]:
    if not key:
        return None
    return base64.b64encode(json_util.dumps(key).encode("utf-8")).decode("ascii")


def decode_cursor(token: Optional[str]) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        key = json_util.loads(base64.b64decode(token, validate=True).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError, TypeError, BSONError):
        raise FilterValidationError({"start": "malformed cursor"})
    if not isinstance(key, dict):
        raise FilterValidationError({"start": "malformed cursor"})
    return key


def merge_unique(existing: List[Dict[str, Any]], incoming: Iterable[Dict[str, Any]],
                 key: str = "id", seen: Optional[Set[Any]] = None) -> List[Dict[str, Any]]:
    """
    Extend ``existing`` in place with the items of ``incoming`` whose id has
    not been seen; first occurrence keeps its place. Pass the same ``seen``
    set on every call to avoid rebuilding it from ``existing``.
    """
    if seen is None:
        seen = {item.get(key) for item in existing}
    for item in incoming:
        k = item.get(key)
        if k in seen:
            continue
        seen.add(k)
        existing.append(item)
    return existing


def sort_newest_first(items: List[Dict[str, Any]], field_name: str = "timestamp_meter_iso") -> List[Dict[str, Any]]:
    # canonical ISO strings order chronologically; missing timestamps sort last
    return sorted(items, key=lambda item: item.get(field_name) or "", reverse=True)


async def scan_page(scan: ScanFn, cursor: Optional[str], limit: int) -> PageResult:
    page = await scan(decode_cursor(cursor), limit)
    items = sort_newest_first([normalize_audio_item(it) for it in page.items])
    return PageResult(items=items, next_start=encode_cursor(page.last_key))


async def scan_all(scan: ScanFn, chunk_size: int = 1000, max_items: int = 0) -> ScanAllResult:
    """
    Fetch pages of ``chunk_size`` until the scan is exhausted or
    ``max_items`` distinct items are held (0 means no cap). Hitting the cap
    with data left over returns exactly ``max_items`` items and sets
    ``truncated``.
    """
    result = ScanAllResult()
    seen = set()
    start_key = None

    while True:
        page = await scan(start_key, chunk_size)
        result.pages_fetched += 1
        merge_unique(result.items, (normalize_audio_item(it) for it in page.items), seen=seen)

        if max_items > 0 and len(result.items) >= max_items:
            if len(result.items) > max_items or page.last_key:
                result.truncated = True
                logger.warning("reached MAX_ITEMS_TO_FETCH=%d after %d pages, stopping early",
                               max_items, result.pages_fetched)
            result.items = result.items[:max_items]
            break

        if not page.last_key:
            break
        start_key = page.last_key

    result.items = sort_newest_first(result.items)
    return result

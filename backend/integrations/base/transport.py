# backend/integrations/base/transport.py
"""Provider-independent helpers shared by every adapter: backoff, cursor
pagination, sequential batching and import deduplication."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from integrations.core.integration_item import NormalizedItem
from integrations.core.models import Page

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def backoff(seconds: float) -> None:
    await asyncio.sleep(seconds)


def parse_retry_after(value: Optional[str], default: float = 1.0) -> float:
    """Seconds to wait from a Retry-After header (delta-seconds or HTTP date)."""
    if not value:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


async def paginate(
    fetch_page: Callable[[Optional[str]], Awaitable[Page]], max_pages: int = 100
) -> List[Any]:
    """Follow continuation tokens until none is returned or ``max_pages`` is hit."""
    items: List[Any] = []
    cursor: Optional[str] = None
    for _ in range(max_pages):
        page = await fetch_page(cursor)
        items.extend(page.items)
        cursor = page.next_cursor
        if not cursor:
            return items
    logger.warning(
        f"Stopped paginating after {max_pages} pages with a continuation token still present"
    )
    return items


async def process_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[List[T]], Awaitable[Iterable[R]]],
    pause_seconds: float = 0.1,
) -> List[R]:
    """Run ``worker`` over fixed-size chunks one after another, pausing in between."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    results: List[R] = []
    for start in range(0, len(items), batch_size):
        if start and pause_seconds:
            await backoff(pause_seconds)
        results.extend(await worker(list(items[start : start + batch_size])))
    return results


def normalize_title(title: str) -> str:
    return (title or "").strip().lower()


def deduplicate(
    items: Iterable[NormalizedItem],
    existing: Iterable[NormalizedItem],
    by_title: bool = False,
) -> Tuple[List[NormalizedItem], int]:
    """Drop items already present by ``(source, originalId)`` or id.

    With ``by_title`` a case-insensitive title match also counts as a
    duplicate. Duplicates inside ``items`` itself are dropped too. Returns the
    fresh items and the number skipped.
    """
    seen_keys = set()
    seen_ids = set()
    seen_titles = set()
    for item in existing:
        seen_ids.add(item.id)
        if item.source and item.original_id is not None:
            seen_keys.add((item.source, item.original_id))
        if by_title:
            seen_titles.add(normalize_title(item.title))

    fresh: List[NormalizedItem] = []
    skipped = 0
    for item in items:
        key = (item.source, item.original_id)
        title = normalize_title(item.title)
        if (
            key in seen_keys
            or item.id in seen_ids
            or (by_title and title and title in seen_titles)
        ):
            skipped += 1
            continue
        fresh.append(item)
        seen_keys.add(key)
        seen_ids.add(item.id)
        if by_title:
            seen_titles.add(title)
    return fresh, skipped

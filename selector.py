#!/usr/bin/env python3
"""
Delta selection.

Given canonical feeds and the persisted watermarks, pick the entries that have
not been reported yet, bounded per feed. Only the newest entries within the
limit are reported, and the watermark advances to the newest reported entry,
so older entries held back by the limit are never reported.
"""

from operator import attrgetter
from datetime import datetime
from typing import Iterable, List, Optional

from config import get_logger
from models import CanonicalEntry, CanonicalFeed, Watermarks

logger = get_logger("selector")

_by_updated = attrgetter("updated")


def select_new(feed: CanonicalFeed, limit: int, watermarks: Watermarks) -> List[CanonicalEntry]:
    """Return up to ``limit`` unseen entries of ``feed``, oldest first.

    Entries strictly newer than the feed's watermark qualify; a feed without a
    watermark has every entry qualify. The newest qualifying entries are kept.
    """
    if limit < 1:
        raise ValueError(f"limit must be at least 1, got {limit}")

    watermark = watermarks.get(feed.id)
    newest_first = sorted((entry.copy() for entry in feed.entries), key=_by_updated, reverse=True)

    selected: List[CanonicalEntry] = []
    for entry in newest_first:
        if len(selected) >= limit:
            break
        if watermark is None or entry.updated > watermark:
            selected.append(entry)

    selected.sort(key=_by_updated)
    return selected


def pick_new_data(feeds: Iterable[CanonicalFeed], limit: int, watermarks: Watermarks) -> List[CanonicalFeed]:
    """Apply select_new to each feed and keep those with something new."""
    result: List[CanonicalFeed] = []
    for feed in feeds:
        entries = select_new(feed, limit, watermarks)
        if not entries:
            logger.debug(f"No new entries for feed {feed.title!r}")
            continue
        logger.info(f"Feed {feed.title!r} has {len(entries)} new entries")
        result.append(feed.with_entries(entries))
    return result


def update_watermarks(watermarks: Watermarks, new_feeds: Iterable[CanonicalFeed]) -> Watermarks:
    """Advance each selected feed's watermark to its newest reported entry.

    ``new_feeds`` must carry only selected entries (the output of
    pick_new_data). The mapping is updated in place and returned.
    """
    for feed in new_feeds:
        if not feed.entries:
            continue
        latest: Optional[datetime] = watermarks.get(feed.id)
        if latest is None:
            latest = min(entry.updated for entry in feed.entries)
        for entry in feed.entries:
            if entry.updated > latest:
                latest = entry.updated
        logger.debug(f"Watermark for {feed.id} set to {latest}")
        watermarks[feed.id] = latest
    return watermarks


def count_entries(feeds: Iterable[CanonicalFeed]) -> int:
    return sum(len(feed.entries) for feed in feeds)

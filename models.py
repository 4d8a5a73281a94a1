#!/usr/bin/env python3
"""
Canonical in-memory model shared by the decoder, selector and notifier.

Every supported feed dialect is normalized into CanonicalFeed/CanonicalEntry
instances. Entries are not kept in any particular order here; ordering is
imposed only by the selector.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from errors import NormalizationError

Watermarks = Dict[str, datetime]


@dataclass
class CanonicalEntry:
    title: str
    link: str
    id: str
    updated: datetime
    content: str = ""

    def copy(self) -> "CanonicalEntry":
        return replace(self)


@dataclass
class CanonicalFeed:
    """A normalized feed.

    ``id`` identifies the feed across runs (it keys the watermark mapping) and
    must be non-empty unless the instance only describes a failed source, in
    which case ``failure`` holds the error shown to the operator.
    """

    id: str
    title: str = ""
    link: str = ""
    updated: Optional[datetime] = None
    entries: List[CanonicalEntry] = field(default_factory=list)
    failure: Optional[Exception] = None

    def __post_init__(self) -> None:
        self.id = (self.id or "").strip()
        if not self.id and self.failure is None:
            raise NormalizationError(f"feed {self.title!r} has no usable identity")

    def with_entries(self, entries: List[CanonicalEntry]) -> "CanonicalFeed":
        """Copy of the feed metadata carrying a different entry list."""
        return CanonicalFeed(
            id=self.id,
            title=self.title,
            link=self.link,
            updated=self.updated,
            entries=entries,
        )

    def __str__(self) -> str:
        return f"<{self.title} updated={self.updated} entries={len(self.entries)}>"


@dataclass
class FeedSource:
    """A configured feed source."""

    name: str
    url: str
    disabled: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> "FeedSource":
        if not isinstance(data, dict):
            raise ValueError("feed entry must be a mapping")
        url = str(data.get('url') or '').strip()
        if not url:
            raise ValueError("feed entry is missing url")
        return cls(
            name=str(data.get('name') or url).strip(),
            url=url,
            disabled=bool(data.get('disabled', False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {'name': self.name, 'url': self.url}
        if self.disabled:
            row['disabled'] = True
        return row


@dataclass
class FetchResult:
    """Outcome of fetching one source: a feed, a failure, or nothing.

    ``feed`` is None with no ``error`` when the document was skipped as
    truncated; such results are neither successes nor failures.
    """

    source: FeedSource
    feed: Optional[CanonicalFeed] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def failure_feed(self) -> CanonicalFeed:
        """Describe a failed source in feed form for the notification template."""
        if self.error is None:
            raise ValueError("result is not a failure")
        return CanonicalFeed(
            id="",
            title=self.source.name,
            link=self.source.url,
            failure=self.error,
        )

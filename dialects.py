#!/usr/bin/env python3
"""
Feed dialect adapters.

Each supported dialect (Atom, RSS 2.0, RDF/RSS 1.0) is a small class with two
steps:

* ``decode(root)`` reads a parsed XML document into the dialect's own
  structure, raising DecodeError when the document is not that dialect or an
  element cannot be decoded;
* ``to_canonical_feed()`` maps that structure onto CanonicalFeed, raising
  NormalizationError when a structural invariant does not hold.

Elements are matched by local name, so namespaced elements such as
``atom:link``, ``dc:date`` and ``media:group`` are found regardless of prefix.
"""

import copy
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Type
from xml.etree import ElementTree as ET
from xml.etree.ElementTree import Element

from config import get_logger
from dates import parse_time
from errors import DecodeError, NormalizationError
from links import Link, first_non_self, get_attr, local_name, resolve_links, select_identity_and_alternate
from models import CanonicalEntry, CanonicalFeed

logger = get_logger("dialects")


def _children(element: Optional[Element], name: str) -> List[Element]:
    if element is None:
        return []
    return [child for child in element if local_name(child.tag) == name]


def _child(element: Optional[Element], name: str) -> Optional[Element]:
    if element is None:
        return None
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def _text(element: Optional[Element], name: str, strip: bool = True) -> str:
    child = _child(element, name)
    if child is None:
        return ""
    value = "".join(child.itertext())
    return value.strip() if strip else value


def _int_attr(element: Element, name: str) -> int:
    try:
        return int(get_attr(element, name) or 0)
    except ValueError:
        return 0


def _inner_markup(element: Optional[Element]) -> str:
    """Return an element's content as an HTML fragment.

    Escaped HTML (``type="html"``) arrives as text and is returned as is;
    inline XHTML children are serialized without their namespace prefixes.
    """
    if element is None:
        return ""
    if len(element) == 0:
        return element.text or ""
    clone = copy.deepcopy(element)
    for node in clone.iter():
        node.tag = local_name(node.tag)
        for key in list(node.attrib):
            bare = local_name(key)
            if bare != key:
                node.attrib[bare] = node.attrib.pop(key)
    parts = [clone.text or ""]
    for child in clone:
        parts.append(ET.tostring(child, encoding="unicode", method="html"))
    return "".join(parts)


def _expect_root(root: Element, name: str) -> None:
    found = local_name(root.tag)
    if found != name:
        raise DecodeError(f"expected element type <{name}> but have <{found}>")


# ---------------------------------------------------------------------------
# Atom
# ---------------------------------------------------------------------------

@dataclass
class MediaThumbnail:
    url: str
    width: int = 0
    height: int = 0

    def html(self) -> str:
        return f'<img src="{self.url}" width="{self.width}" height="{self.height}" />'


@dataclass
class MediaGroup:
    """``media:group`` as published by YouTube channel feeds."""

    title: str = ""
    description: str = ""
    content_url: str = ""
    thumbnail: Optional[MediaThumbnail] = None

    @classmethod
    def decode(cls, element: Element) -> "MediaGroup":
        content = _child(element, "content")
        thumb = _child(element, "thumbnail")
        return cls(
            title=_text(element, "title"),
            description=_text(element, "description", strip=False),
            content_url=get_attr(content, "url") if content is not None else "",
            thumbnail=MediaThumbnail(
                url=get_attr(thumb, "url"),
                width=_int_attr(thumb, "width"),
                height=_int_attr(thumb, "height"),
            ) if thumb is not None else None,
        )

    def html(self) -> str:
        result = f"<div>{self.description}</div>"
        if self.thumbnail is not None:
            href = self.content_url or self.thumbnail.url
            result += f'<div><a href="{href}">{self.thumbnail.html()}</a></div>'
        return result


@dataclass
class AtomEntry:
    title: str
    links: List[Link]
    updated: str
    published: str
    id: str
    content: str
    media_group: Optional[MediaGroup] = None

    @classmethod
    def decode(cls, element: Element) -> "AtomEntry":
        content_el = _child(element, "content")
        if content_el is None:
            content_el = _child(element, "summary")
        group = _child(element, "group")
        return cls(
            title=_text(element, "title"),
            links=resolve_links(_children(element, "link")),
            updated=_text(element, "updated"),
            published=_text(element, "published"),
            id=_text(element, "id"),
            content=_inner_markup(content_el),
            media_group=MediaGroup.decode(group) if group is not None else None,
        )

    @property
    def link(self) -> str:
        for link in self.links:
            if link.rel in ("", "alternate"):
                return link.href
        return self.links[0].href if self.links else ""

    def entry(self) -> Optional[CanonicalEntry]:
        updated = parse_time(self.updated) or parse_time(self.published)
        if updated is None:
            return None
        content = self.content
        if not content.strip() and self.media_group is not None:
            content = self.media_group.html()
        return CanonicalEntry(
            title=self.title,
            link=self.link,
            id=self.id or self.link,
            updated=updated,
            content=content,
        )


@dataclass
class AtomFeed:
    name = "atom"

    title: str
    links: List[Link]
    updated: str
    id: str
    entries: List[AtomEntry] = field(default_factory=list)

    @classmethod
    def decode(cls, root: Element) -> "AtomFeed":
        _expect_root(root, "feed")
        return cls(
            title=_text(root, "title"),
            links=resolve_links(_children(root, "link")),
            updated=_text(root, "updated"),
            id=_text(root, "id"),
            entries=[AtomEntry.decode(el) for el in _children(root, "entry")],
        )

    def to_canonical_feed(self) -> CanonicalFeed:
        human = first_non_self(self.links)
        link = human.href if human else ""
        feed = CanonicalFeed(
            id=link or self.id,
            title=self.title,
            link=link,
            updated=parse_time(self.updated),
        )
        for atom_entry in self.entries:
            entry = atom_entry.entry()
            if entry is None:
                logger.warning(
                    f"Ignoring entry {atom_entry.title!r} without parseable updated field "
                    f"(updated={atom_entry.updated!r}) for feed {self.title!r}"
                )
                continue
            feed.entries.append(entry)
        return feed


# ---------------------------------------------------------------------------
# RSS 2.0
# ---------------------------------------------------------------------------

@dataclass
class RSSItem:
    title: str
    link: str
    description: str
    encoded: str
    guid: str
    pub_date: str

    @classmethod
    def decode(cls, element: Element) -> "RSSItem":
        link = ""
        link_el = _child(element, "link")
        if link_el is not None:
            link = ("".join(link_el.itertext()).strip()) or get_attr(link_el, "href").strip()
        return cls(
            title=_text(element, "title"),
            link=link,
            description=_text(element, "description", strip=False),
            encoded=_text(element, "encoded", strip=False),
            guid=_text(element, "guid"),
            pub_date=_text(element, "pubDate"),
        )


@dataclass
class RSSFeed:
    name = "rss"

    title: str
    links: List[Link]
    last_build_date: str
    items: List[RSSItem] = field(default_factory=list)

    @classmethod
    def decode(cls, root: Element) -> "RSSFeed":
        _expect_root(root, "rss")
        channel = _child(root, "channel")
        return cls(
            title=_text(channel, "title"),
            links=resolve_links(_children(channel, "link")),
            last_build_date=_text(channel, "lastBuildDate"),
            items=[RSSItem.decode(el) for el in _children(channel, "item")],
        )

    def to_canonical_feed(self) -> CanonicalFeed:
        if not self.links:
            raise NormalizationError(f"failed to convert rss feed {self.title!r}, missing link")

        identity, alternate = select_identity_and_alternate(self.links)
        feed = CanonicalFeed(
            id=identity.href,
            title=self.title,
            link=alternate.href,
        )

        if self.last_build_date:
            feed.updated = parse_time(self.last_build_date)
            if feed.updated is None:
                logger.warning(f"Ignoring unparseable lastBuildDate {self.last_build_date!r} for feed {self.title!r}")

        for item in self.items:
            if not item.pub_date:
                logger.info(f"Ignoring item {item.title!r} without pubDate field for feed {self.title!r}")
                continue
            published = parse_time(item.pub_date)
            if published is None:
                logger.warning(f"Ignoring item {item.title!r} with unparseable pubDate {item.pub_date!r} for feed {self.title!r}")
                continue
            feed.entries.append(CanonicalEntry(
                title=item.title,
                link=item.link,
                id=item.guid or item.link,
                updated=published,
                content=item.description if item.description.strip() else item.encoded,
            ))
        return feed


# ---------------------------------------------------------------------------
# RDF / RSS 1.0
# ---------------------------------------------------------------------------

@dataclass
class RDFItem:
    title: str
    link: str
    date: str
    description: str

    @classmethod
    def decode(cls, element: Element) -> "RDFItem":
        return cls(
            title=_text(element, "title"),
            link=_text(element, "link"),
            date=_text(element, "date"),
            description=_text(element, "description", strip=False),
        )

    def missing_fields(self) -> List[str]:
        return [
            name for name, value in (
                ("title", self.title),
                ("link", self.link),
                ("date", self.date),
                ("description", self.description.strip()),
            ) if not value
        ]


@dataclass
class RDFFeed:
    name = "rdf"

    channel: Optional[Tuple[str, str, str]]
    items: List[RDFItem] = field(default_factory=list)

    @classmethod
    def decode(cls, root: Element) -> "RDFFeed":
        _expect_root(root, "RDF")
        channel = _child(root, "channel")
        return cls(
            channel=(
                _text(channel, "title"),
                _text(channel, "link"),
                _text(channel, "date"),
            ) if channel is not None else None,
            items=[RDFItem.decode(el) for el in _children(root, "item")],
        )

    def to_canonical_feed(self) -> CanonicalFeed:
        if self.channel is None:
            raise NormalizationError("failed to convert rdf feed, missing channel")
        title, link, date = self.channel
        feed = CanonicalFeed(
            id=link,
            title=title,
            link=link,
            updated=parse_time(date),
        )
        for item in self.items:
            missing = item.missing_fields()
            if missing:
                logger.warning(f"Ignoring item {item.title!r} missing {', '.join(missing)} for feed {title!r}")
                continue
            updated = parse_time(item.date)
            if updated is None:
                logger.warning(f"Ignoring item {item.title!r} with unparseable date {item.date!r} for feed {title!r}")
                continue
            feed.entries.append(CanonicalEntry(
                title=item.title,
                link=item.link,
                id=item.link,
                updated=updated,
                content=item.description,
            ))
        return feed


# Attempt order for detection.
DIALECTS: Tuple[Type[AtomFeed], Type[RSSFeed], Type[RDFFeed]] = (AtomFeed, RSSFeed, RDFFeed)

#!/usr/bin/env python3
"""
Link element decoding.

Feeds express links two ways: RSS puts the URL in the element text
(``<link>https://example.com/</link>``) while Atom, and ``atom:link`` inside
RSS, use attributes (``<link rel="self" href="..."/>``). resolve_link accepts
both, in that order.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit
from xml.etree.ElementTree import Element

from errors import LinkError

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


@dataclass
class Link:
    href: str
    rel: str = ""
    type: str = ""


def local_name(tag: str) -> str:
    """Strip an ElementTree ``{namespace}`` prefix from a tag or attribute name."""
    if tag and tag[0] == "{":
        return tag.rsplit("}", 1)[1]
    return tag


def get_attr(element: Element, name: str) -> str:
    """Return an attribute by local name, ignoring any namespace."""
    for key, value in element.attrib.items():
        if local_name(key) == name:
            return value
    return ""


def is_request_uri(value: Optional[str]) -> bool:
    """True for an absolute URI or an absolute path, as in an HTTP request line."""
    if not value:
        return False
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        return False
    if value.startswith("/"):
        return True
    if not _SCHEME_RE.match(value):
        return False
    try:
        return bool(urlsplit(value).scheme)
    except ValueError:
        return False


def resolve_link(element: Element) -> Link:
    """Decode a link element into a Link.

    Raises:
        LinkError: Neither the element text nor its href attribute is usable.
    """
    rel = get_attr(element, "rel")
    link_type = get_attr(element, "type")

    text = "".join(element.itertext()).strip()
    if is_request_uri(text):
        return Link(href=text, rel=rel, type=link_type)

    href = get_attr(element, "href").strip()
    if not href:
        raise LinkError(f"found no href content in link element <{local_name(element.tag)}> attrs={dict(element.attrib)!r}")
    if not is_request_uri(href):
        raise LinkError(f"could not parse link's href={href!r}")
    return Link(href=href, rel=rel, type=link_type)


def resolve_links(elements: Iterable[Element]) -> List[Link]:
    return [resolve_link(el) for el in elements]


def select_identity_and_alternate(links: List[Link]) -> Tuple[Link, Link]:
    """Pick the (identity, human-facing) pair among a channel's links.

    Both default to the first link. A ``rel=alternate`` or ``type=text/html``
    link becomes the human-facing one and a ``rel=self`` link the identity;
    when several qualify the last one wins.
    """
    if not links:
        raise ValueError("no links to select from")
    identity = alternate = links[0]
    for link in links:
        if link.type == "text/html" or link.rel == "alternate":
            alternate = link
        elif link.rel == "self":
            identity = link
    return identity, alternate


def first_non_self(links: List[Link]) -> Optional[Link]:
    for link in links:
        if link.rel != "self":
            return link
    return None

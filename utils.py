#!/usr/bin/env python3
"""
Utility functions for the notification stage.

Entry content is an HTML fragment copied verbatim from the feed, so relative
``src``/``href`` references break once the fragment is shown outside the
publisher's site. These helpers rewrite them against the feed's link.
"""

from typing import Iterable, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from config import get_logger
from models import CanonicalFeed

logger = get_logger("utils")

# Elements and the attribute that carries their URL
URL_ATTRIBUTES = (('img', 'src'), ('a', 'href'))


def _absolutify_url(value: str, base_url: str) -> Optional[str]:
    """Resolve ``value`` against ``base_url``; absolute URLs are returned unchanged."""
    try:
        if urlsplit(value).scheme:
            return value
        return urljoin(base_url, value)
    except ValueError as e:
        logger.info(f"ignoring url parse error url={value!r} err={e}")
        return None


def absolutify_html(html_content: str, base_url: str) -> str:
    """Rewrite relative ``img[src]`` and ``a[href]`` values to absolute URLs.

    Args:
        html_content: HTML fragment from a feed entry
        base_url: The feed's human-facing link

    Returns:
        The rewritten fragment. Content without relative references comes
        back unchanged.
    """
    if not html_content:
        return html_content

    soup = BeautifulSoup(html_content, 'html.parser')
    changed = False
    for tag_name, attr in URL_ATTRIBUTES:
        for tag in soup.find_all(tag_name):
            if not tag.has_attr(attr):
                continue
            value = str(tag[attr])
            rewritten = _absolutify_url(value, base_url)
            if rewritten is not None and rewritten != value:
                tag[attr] = rewritten
                changed = True

    return str(soup) if changed else html_content


def resolve_relative_urls(feeds: Iterable[CanonicalFeed]) -> None:
    """Absolutify the content of every entry in place, using each feed's link as base."""
    for feed in feeds:
        if not feed.link:
            logger.info(f"ignoring feed {feed.title!r} without link when replacing relative urls")
            continue
        try:
            urlsplit(feed.link)
        except ValueError as e:
            logger.info(f"ignoring url parse error when trying to replace relative urls err={e}")
            continue
        for entry in feed.entries:
            entry.content = absolutify_html(entry.content, feed.link)

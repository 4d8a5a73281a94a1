from xml.etree import ElementTree as ET

import pytest

from errors import DecodeError, LinkError
from links import Link, first_non_self, is_request_uri, resolve_link, select_identity_and_alternate


def _el(markup: str):
    return ET.fromstring(markup)


def test_link_from_element_text():
    link = resolve_link(_el("<link> https://example.com/ </link>"))

    assert link == Link(href="https://example.com/")


def test_link_from_href_attribute():
    link = resolve_link(_el('<link rel="self" type="application/atom+xml" href="https://example.com/feed.atom"/>'))

    assert link.href == "https://example.com/feed.atom"
    assert link.rel == "self"
    assert link.type == "application/atom+xml"


def test_namespaced_link_attributes():
    link = resolve_link(_el(
        '<atom:link xmlns:atom="http://www.w3.org/2005/Atom" href="http://feeds.kottke.org/main" rel="self"/>'
    ))

    assert link.href == "http://feeds.kottke.org/main"
    assert link.rel == "self"


def test_text_that_is_not_a_uri_falls_back_to_href():
    link = resolve_link(_el('<link href="https://example.com/post">read more</link>'))

    assert link.href == "https://example.com/post"


def test_absolute_path_is_accepted():
    assert resolve_link(_el("<link>/blog/post</link>")).href == "/blog/post"


def test_missing_href_raises():
    with pytest.raises(LinkError, match="found no href content"):
        resolve_link(_el("<link/>"))


def test_invalid_href_raises():
    with pytest.raises(LinkError, match="could not parse link's href"):
        resolve_link(_el('<link href="not a url"/>'))


def test_link_error_is_a_decode_error():
    assert issubclass(LinkError, DecodeError)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://example.com/a?b=c", True),
        ("/relative/to/root", True),
        ("mailto:someone@example.com", True),
        ("relative/path", False),
        ("", False),
        (None, False),
        ("https://example.com/with space", False),
    ],
)
def test_is_request_uri(value, expected):
    assert is_request_uri(value) is expected


def test_select_defaults_to_first_link():
    only = Link(href="https://example.com/")

    assert select_identity_and_alternate([only]) == (only, only)


def test_select_prefers_self_for_identity_and_alternate_for_humans():
    plain = Link(href="https://example.com/")
    self_link = Link(href="https://example.com/feed", rel="self")
    html = Link(href="https://example.com/home", type="text/html")

    identity, alternate = select_identity_and_alternate([plain, self_link, html])

    assert identity is self_link
    assert alternate is html


def test_select_last_match_wins():
    first = Link(href="https://example.com/a", rel="alternate")
    second = Link(href="https://example.com/b", rel="alternate")

    _, alternate = select_identity_and_alternate([first, second])

    assert alternate is second


def test_select_requires_links():
    with pytest.raises(ValueError):
        select_identity_and_alternate([])


def test_first_non_self():
    links = [Link(href="https://example.com/feed", rel="self"), Link(href="https://example.com/", rel="alternate")]

    assert first_non_self(links).href == "https://example.com/"
    assert first_non_self(links[:1]) is None

from datetime import datetime, timezone

import pytest

from detector import detect
from dialects import AtomFeed, RDFFeed, RSSFeed
from errors import DecodeError, NormalizationError
from xml.etree import ElementTree as ET


def test_atom_feed(read_fixture):
    feed = detect(read_fixture("golang.atom"))

    assert feed.title == "The Go Blog"
    assert feed.id == "https://go.dev/blog/"
    assert feed.link == "https://go.dev/blog/"
    assert feed.updated == datetime(2022, 7, 23, 10, 0, tzinfo=timezone.utc)
    # The undated draft is dropped
    assert [e.title for e in feed.entries] == ["Go 1.19 is released", "Vulnerability management", "Inline markup"]

    released = feed.entries[0]
    assert released.id == "tag:blog.golang.org,2013:blog.golang.org/go1.19"
    assert released.link == "https://go.dev/blog/go1.19"
    assert released.content == "<p>Today the Go team is thrilled to release Go 1.19.</p>"


def test_atom_entry_falls_back_to_published_and_summary(read_fixture):
    feed = detect(read_fixture("golang.atom"))
    vuln = feed.entries[1]

    assert vuln.updated == datetime(2022, 7, 22, 7, 30, tzinfo=timezone.utc)
    assert vuln.content == "<p>Summary only.</p>"


def test_atom_inline_xhtml_content(read_fixture):
    feed = detect(read_fixture("golang.atom"))
    inline = feed.entries[2]

    assert inline.link == "https://go.dev/blog/xhtml"
    assert "<p>Hello <b>world</b></p>" in inline.content
    assert "xmlns" not in inline.content


def test_atom_identity_falls_back_to_id_element():
    root = ET.fromstring(
        '<feed xmlns="http://www.w3.org/2005/Atom"><title>Self only</title>'
        '<id>urn:uuid:60a76c80</id><link rel="self" href="https://example.com/feed"/></feed>'
    )

    feed = AtomFeed.decode(root).to_canonical_feed()

    assert feed.id == "urn:uuid:60a76c80"
    assert feed.link == ""
    assert feed.updated is None


def test_atom_without_identity_is_rejected():
    root = ET.fromstring('<feed xmlns="http://www.w3.org/2005/Atom"><title>Anonymous</title></feed>')

    with pytest.raises(NormalizationError):
        AtomFeed.decode(root).to_canonical_feed()


def test_youtube(read_fixture):
    feed = detect(read_fixture("wandel.xml"))

    assert feed.title == "Matthias Wandel"
    assert feed.link == "https://www.youtube.com/channel/UCckETVOT59aYw80B36aP9vw"
    assert len(feed.entries) == 2

    first = feed.entries[0]
    assert first.title == '26" bandsaw sawdust drawer and bottom enclosure'
    assert first.link == "https://www.youtube.com/watch?v=9eRIUV94kgQ"
    assert first.content == (
        '<div>Working on finishing up my 26" bandsaw.</div>'
        '<div><a href="https://www.youtube.com/v/9eRIUV94kgQ?version=3">'
        '<img src="https://i2.ytimg.com/vi/9eRIUV94kgQ/hqdefault.jpg" width="480" height="360" /></a></div>'
    )
    assert feed.entries[1].content == "<div>No thumbnail here.</div>"


def test_reddit(read_fixture):
    feed = detect(read_fixture("rprogramming.atom"))

    assert feed.title == "programming"
    assert feed.link == "https://www.reddit.com/r/programming/"
    assert len(feed.entries) == 3
    first = feed.entries[0]
    assert first.title == "Dark Mode Coming to GitHub After 7 Years"
    assert first.id == "t3_k9w1n2"
    assert first.link.startswith("https://www.reddit.com/r/programming/comments/k9w1n2/")
    assert 'href="https://www.reddit.com/user/alice"' in first.content


def test_rss_feed(read_fixture):
    feed = detect(read_fixture("kottke.rss"))

    assert feed.title == "kottke.org"
    assert feed.id == "http://feeds.kottke.org/main"
    assert feed.link == "http://kottke.org/"
    assert feed.updated == datetime(2020, 11, 23, 15, 4, 5, tzinfo=timezone.utc)
    # Items without a usable pubDate are skipped
    assert [e.title for e in feed.entries] == ["Her Soundtrack", "Encoded only"]

    soundtrack, encoded = feed.entries
    assert soundtrack.id == "tag:kottke.org,2020:/20/11/her-soundtrack"
    assert '<img src="/plus/misc/images/her-soundtrack.jpg">' in soundtrack.content
    assert encoded.id == "http://kottke.org/20/11/encoded-only"
    assert encoded.updated == datetime(2020, 11, 22, 9, 0, tzinfo=timezone.utc)
    assert encoded.content == "<p>Full text lives here.</p>"


def test_rss_date_only(read_fixture):
    feed = detect(read_fixture("date-no-time.rss"))

    assert len(feed.entries) == 1
    assert feed.entries[0].updated == datetime(2020, 11, 23, tzinfo=timezone.utc)
    assert feed.updated is None


def test_rss_without_link_fails_normalization(read_fixture):
    with pytest.raises(NormalizationError, match="missing link"):
        detect(read_fixture("no-link.rss"))


def test_rss_unparseable_build_date_is_ignored():
    root = ET.fromstring(
        "<rss><channel><title>t</title><link>https://example.com/</link>"
        "<lastBuildDate>sometime</lastBuildDate></channel></rss>"
    )

    feed = RSSFeed.decode(root).to_canonical_feed()

    assert feed.updated is None
    assert feed.entries == []


def test_rdf_feed(read_fixture):
    feed = detect(read_fixture("slashdot.rdf"))

    assert feed.title == "Example RDF"
    assert feed.id == "https://example.org/"
    assert feed.updated == datetime(2021, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
    # The second item has no description and is dropped
    assert len(feed.entries) == 1
    entry = feed.entries[0]
    assert entry.id == entry.link == "https://example.org/one"
    assert entry.content == "First story"


def test_rdf_without_channel():
    root = ET.fromstring('<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"/>')

    with pytest.raises(NormalizationError, match="missing channel"):
        RDFFeed.decode(root).to_canonical_feed()


@pytest.mark.parametrize("dialect, root", [(AtomFeed, "<rss/>"), (RSSFeed, "<feed/>"), (RDFFeed, "<feed/>")])
def test_dialect_rejects_foreign_root(dialect, root):
    with pytest.raises(DecodeError, match="expected element type"):
        dialect.decode(ET.fromstring(root))

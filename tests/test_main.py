from datetime import datetime, timezone

import pytest

import main as main_module
from config import Config
from errors import FetchError, NotificationError
from fetcher import REDDIT_FEED_PATTERN, CredentialSet
from main import FeedNotifierOrchestrator, build_parser
from models import CanonicalEntry, CanonicalFeed, FeedSource, FetchResult


class MemoryStore:
    def __init__(self, initial=None):
        self.data = dict(initial or {})
        self.saves = 0

    def load(self):
        return dict(self.data)

    def save(self, watermarks):
        self.data = dict(watermarks)
        self.saves += 1


class FakeNotifier:
    def __init__(self, fail=False):
        self.bodies = []
        self.failures = []
        self.fail = fail

    def send(self, html_body, subject=None):
        if self.fail:
            raise NotificationError("smtp unavailable")
        self.bodies.append(html_body)

    def send_failure(self, error):
        self.failures.append(error)
        return True


class FakeFetcher:
    def __init__(self, feeds, failures=()):
        self.feeds = feeds
        self.failures = list(failures)
        self.calls = []

    async def fetch_all(self, sources):
        self.calls.append(list(sources))
        return self.feeds, self.failures


def _entry(hour, content=""):
    return CanonicalEntry(
        title=f"post {hour}",
        link=f"https://example.com/{hour}",
        id=f"post-{hour}",
        updated=datetime(2022, 7, 22, hour, tzinfo=timezone.utc),
        content=content,
    )


def _feed(*entries):
    return CanonicalFeed(id="https://example.com/", title="Example", link="https://example.com/", entries=list(entries))


@pytest.fixture
def cfg(tmp_path):
    cfg = Config(str(tmp_path))
    cfg.FEEDS_CONFIG_PATH = str(tmp_path / "feeds.yaml")
    cfg.EMAIL_TEMPLATE_FILE = None
    cfg.MAX_ENTRIES_PER_FEED = 2
    cfg.REPLACE_RELATIVE_URLS = False
    (tmp_path / "feeds.yaml").write_text("- name: Example\n  url: https://example.com/feed\n")
    return cfg


@pytest.mark.asyncio
async def test_run_once_sends_and_advances_watermarks(cfg):
    store = MemoryStore()
    notifier = FakeNotifier()
    fetcher = FakeFetcher([_feed(_entry(1), _entry(2), _entry(3))])

    summary = await FeedNotifierOrchestrator(cfg, store, notifier, fetcher).run_once()

    assert summary == {'feeds': 1, 'failures': 0, 'new_entries': 2, 'sent': True}
    assert [s.url for s in fetcher.calls[0]] == ["https://example.com/feed"]
    body = notifier.bodies[0]
    assert "post 2" in body and "post 3" in body and "post 1" not in body
    assert body.index("post 2") < body.index("post 3")
    assert store.saves == 1
    assert store.data == {"https://example.com/": datetime(2022, 7, 22, 3, tzinfo=timezone.utc)}


@pytest.mark.asyncio
async def test_run_once_without_news_leaves_watermarks(cfg):
    watermark = datetime(2022, 7, 22, 3, tzinfo=timezone.utc)
    store = MemoryStore({"https://example.com/": watermark})
    notifier = FakeNotifier()
    fetcher = FakeFetcher([_feed(_entry(1), _entry(2), _entry(3))])

    summary = await FeedNotifierOrchestrator(cfg, store, notifier, fetcher).run_once()

    assert summary['sent'] is False
    assert notifier.bodies == []
    assert store.saves == 0


@pytest.mark.asyncio
async def test_run_once_reports_failures(cfg):
    store = MemoryStore()
    notifier = FakeNotifier()
    failure = FetchResult(
        source=FeedSource(name="Broken", url="https://broken.example.com/feed"),
        error=FetchError("HTTP 500 for url=https://broken.example.com/feed", status=500),
    )
    fetcher = FakeFetcher([], [failure])

    summary = await FeedNotifierOrchestrator(cfg, store, notifier, fetcher).run_once()

    assert summary['failures'] == 1
    assert "Failed to process feed: HTTP 500" in notifier.bodies[0]
    assert store.data == {}


@pytest.mark.asyncio
async def test_run_once_absolutifies_when_enabled(cfg):
    cfg.REPLACE_RELATIVE_URLS = True
    notifier = FakeNotifier()
    fetcher = FakeFetcher([_feed(_entry(1, content='<img src="/pic.png">'))])

    await FeedNotifierOrchestrator(cfg, MemoryStore(), notifier, fetcher).run_once()

    assert 'src="https://example.com/pic.png"' in notifier.bodies[0]


@pytest.mark.asyncio
async def test_delivery_failure_keeps_watermarks(cfg):
    store = MemoryStore()
    notifier = FakeNotifier(fail=True)
    fetcher = FakeFetcher([_feed(_entry(1))])

    success = await FeedNotifierOrchestrator(cfg, store, notifier, fetcher).run()

    assert success is False
    assert store.saves == 0
    assert len(notifier.failures) == 1
    assert "smtp unavailable" in str(notifier.failures[0])


@pytest.mark.asyncio
async def test_missing_delivery_config_is_fatal(cfg):
    for name in ("EMAIL_FROM", "SMTP_HOST", "SMTP_USER", "SMTP_PASS"):
        setattr(cfg, name, None)
    fetcher = FakeFetcher([_feed(_entry(1))])

    success = await FeedNotifierOrchestrator(cfg, MemoryStore(), None, fetcher).run()

    assert success is False
    assert fetcher.calls == []


@pytest.mark.asyncio
async def test_subscribe_sends_reddit_token(cfg, monkeypatch):
    seen = {}

    async def fake_credentials(config, session):
        return CredentialSet([(REDDIT_FEED_PATTERN, "reddit-token")])

    async def fake_subscribe(self, config, url, session=None):
        seen["headers"] = self.credentials.header_for(url)
        seen["session"] = session
        return FeedSource(name="r/golang", url=url)

    monkeypatch.setattr(main_module, "build_credentials", fake_credentials)
    monkeypatch.setattr(main_module.FeedFetcher, "subscribe", fake_subscribe)

    ok = await FeedNotifierOrchestrator(cfg, MemoryStore(), FakeNotifier()).subscribe("https://www.reddit.com/r/golang/.rss")

    assert ok is True
    assert seen["headers"] == {"Authorization": "bearer reddit-token"}
    assert seen["session"] is not None


def test_check_status(cfg):
    store = MemoryStore({"https://example.com/": datetime(2022, 7, 22, 3, tzinfo=timezone.utc)})

    status = FeedNotifierOrchestrator(cfg, store, FakeNotifier()).check_status()

    assert status['checks']['feeds'] == {'status': 'ok', 'total': 1, 'disabled': 0}
    assert status['checks']['watermarks']['entries'] == {"https://example.com/": "2022-07-22 03:00 UTC"}


def test_cli_parser():
    parser = build_parser()

    args = parser.parse_args(["--config-dir", "/etc/feed-notifier", "subscribe", "https://example.com/"])

    assert args.mode == "subscribe"
    assert args.url == "https://example.com/"
    assert args.config_dir == "/etc/feed-notifier"
    with pytest.raises(SystemExit):
        parser.parse_args([])

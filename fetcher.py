#!/usr/bin/env python3
"""
Feed fetcher.

This module downloads every enabled feed source concurrently and turns each
download into exactly one FetchResult: a canonical feed, or the source paired
with the reason it failed. A slow or broken source never holds up the others;
each request has its own timeout and there are no retries within a run.

It also hosts the subscription helper, which finds a feed URL for a web page
and appends it to the feeds file.
"""

import re
import traceback
from asyncio import TimeoutError, create_task, gather, get_running_loop
from functools import partial
from typing import Any, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple
from urllib.parse import urljoin

from aiohttp import BasicAuth, ClientError, ClientSession, ClientTimeout
from bs4 import BeautifulSoup

from config import Config, config, get_logger
from detector import detect
from errors import FeedError, FetchError
from models import CanonicalFeed, FeedSource, FetchResult
from telemetry import get_tracer, init_telemetry, trace_span

logger = get_logger("fetcher")
init_telemetry("feed-notifier-fetcher")
_tracer = get_tracer("fetcher")

REDDIT_FEED_PATTERN = r"http.+reddit.com/r/.+"
REDDIT_TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
FEED_LINK_TYPES = ('application/rss+xml', 'application/atom+xml', 'application/rdf+xml')


class CredentialSet:
    """Bearer tokens keyed by the URL pattern they may be sent to.

    A token is only ever attached to requests whose URL matches its pattern;
    everything else goes out unauthenticated.
    """

    def __init__(self, entries: Optional[Iterable[Tuple[str, str]]] = None) -> None:
        self._entries: List[Tuple[Pattern[str], str]] = []
        for pattern, token in entries or ():
            self.add(pattern, token)

    def add(self, pattern: str, token: Optional[str]) -> None:
        if not token:
            return
        self._entries.append((re.compile(pattern), token))

    def header_for(self, url: str) -> Dict[str, str]:
        for pattern, token in self._entries:
            if pattern.search(url):
                return {'Authorization': f"bearer {token}"}
        return {}

    def __len__(self) -> int:
        return len(self._entries)


async def request_reddit_token(
    session: ClientSession,
    client_id: str,
    client_secret: str,
    user_agent: str,
    timeout: int = 30,
) -> Optional[str]:
    """Obtain an application-only reddit bearer token.

    Returns None on any failure so feeds are fetched unauthenticated instead.
    """
    try:
        async with session.post(
            REDDIT_TOKEN_URL,
            data={'grant_type': 'client_credentials'},
            auth=BasicAuth(client_id, client_secret),
            headers={'User-Agent': user_agent},
            timeout=ClientTimeout(total=timeout),
        ) as response:
            if response.status != 200:
                logger.warning(f"failed to retrieve reddit bearer token: HTTP {response.status}")
                return None
            payload: Dict[str, Any] = await response.json(content_type=None)
    except TimeoutError:
        logger.warning("failed to retrieve reddit bearer token: timed out")
        return None
    except (ClientError, ValueError) as e:
        logger.warning(f"failed to retrieve reddit bearer token err={e}")
        return None

    token = payload.get('access_token') if isinstance(payload, dict) else None
    if not token:
        logger.warning("reddit token response did not contain an access_token")
        return None
    logger.info("successfully requested reddit bearer token")
    return token


async def build_credentials(cfg: Config, session: ClientSession) -> CredentialSet:
    """Collect the bearer tokens the configuration allows us to obtain."""
    credentials = CredentialSet()
    if cfg.reddit_configured:
        token = await request_reddit_token(
            session,
            cfg.REDDIT_CLIENT_ID,
            cfg.REDDIT_CLIENT_SECRET,
            cfg.USER_AGENT,
            cfg.HTTP_TIMEOUT,
        )
        credentials.add(REDDIT_FEED_PATTERN, token)
    return credentials


class FeedFetcher:
    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: Optional[int] = None,
        credentials: Optional[CredentialSet] = None,
    ) -> None:
        self.user_agent = user_agent or config.USER_AGENT
        self.timeout = timeout or config.HTTP_TIMEOUT
        self.credentials = credentials if credentials is not None else CredentialSet()

    def _request_headers(self, url: str) -> Dict[str, str]:
        headers = {'User-Agent': self.user_agent}
        headers.update(self.credentials.header_for(url))
        return headers

    async def get(self, url: str, session: ClientSession) -> bytes:
        """Issue a single GET and return the body.

        Raises:
            FetchError: Network failure, timeout or non-2xx status.
        """
        try:
            async with session.get(
                url,
                headers=self._request_headers(url),
                timeout=ClientTimeout(total=self.timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(f"HTTP {response.status} for url={url}", url=url, status=response.status)
                return await response.read()
        except TimeoutError as e:
            raise FetchError(f"timed out after {self.timeout}s requesting url={url}", url=url) from e
        except ClientError as e:
            raise FetchError(f"failed to request url={url} err={self._format_client_error(e)}", url=url) from e

    @trace_span(
        "fetch_source",
        tracer_name="fetcher",
        attr_from_args=lambda self, source, session: {
            "feed.name": source.name,
            "feed.url": source.url,
        },
    )
    async def fetch_source(self, source: FeedSource, session: ClientSession) -> FetchResult:
        """Download and decode one source. Never raises for per-source problems."""
        logger.debug(f"Fetching feed: {source.name} from {source.url}")
        try:
            data = await self.get(source.url, session)
            feed = await self.run_in_executor(detect, data)
        except FeedError as e:
            logger.warning(f"Failed to process feed {source.name} ({source.url}): {e}")
            return FetchResult(source=source, error=e)
        except (OSError, RuntimeError, ValueError) as e:
            logger.error(f"Unexpected error processing feed {source.name}: {e}")
            logger.error(traceback.format_exc())
            return FetchResult(source=source, error=e)

        if feed is None:
            logger.info(f"Skipping feed {source.name}: truncated document")
        else:
            logger.debug(f"Decoded feed {source.name}: {feed}")
        return FetchResult(source=source, feed=feed)

    @trace_span("fetch_all", tracer_name="fetcher")
    async def fetch_all(
        self,
        sources: Sequence[FeedSource],
        session: Optional[ClientSession] = None,
    ) -> Tuple[List[CanonicalFeed], List[FetchResult]]:
        """Fetch every enabled source concurrently.

        Returns:
            (feeds, failures). Truncated documents appear in neither list and
            disabled sources are never requested.
        """
        enabled = [source for source in sources if not source.disabled]
        logger.info(f"downloading {len(enabled)} feeds in parallel, {len(sources) - len(enabled)} disabled.")

        if session is None:
            async with ClientSession() as own_session:
                outcomes = await self._gather(enabled, own_session)
        else:
            outcomes = await self._gather(enabled, session)

        feeds: List[CanonicalFeed] = []
        failures: List[FetchResult] = []
        for source, outcome in zip(enabled, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Fetch task for {source.name} ended with {outcome!r}")
                failures.append(FetchResult(source=source, error=outcome))
            elif not outcome.ok:
                failures.append(outcome)
            elif outcome.feed is not None:
                feeds.append(outcome.feed)
        logger.info(f"downloaded {len(feeds)} feeds successfully, {len(failures)} failures")
        return feeds, failures

    async def _gather(self, sources: List[FeedSource], session: ClientSession) -> List[Any]:
        # One task per source; gather resolves once each has produced its outcome.
        tasks = [create_task(self.fetch_source(source, session)) for source in sources]
        return await gather(*tasks, return_exceptions=True)

    async def run_in_executor(self, func, *args) -> Any:
        """Run a blocking function in the default thread pool executor."""
        loop = get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    @staticmethod
    def find_feed_info(html: bytes, page_url: str) -> Tuple[str, str]:
        """Find the page title and advertised feed URL in an HTML page.

        Looks for ``<link rel="alternate">`` tags with a feed media type,
        preferring Atom. Relative hrefs are resolved against ``page_url``.
        """
        soup = BeautifulSoup(html, 'html.parser')
        title = soup.title.get_text(strip=True) if soup.title else ""

        feed_links = []
        for link in soup.find_all('link', rel='alternate'):
            type_attr = link.get('type', '')
            href = link.get('href')
            if type_attr in FEED_LINK_TYPES and href:
                feed_links.append({
                    'url': urljoin(page_url, href.strip()),
                    'title': (link.get('title') or '').strip(),
                    'type': type_attr,
                })

        if not feed_links:
            return title, ""
        atom_feeds = [f for f in feed_links if 'atom' in f['type']]
        chosen = atom_feeds[0] if atom_feeds else feed_links[0]
        logger.info(f"found alternate title={chosen['title']} type={chosen['type']} href={chosen['url']}")
        return title or chosen['title'], chosen['url']

    async def subscribe(self, cfg: Config, url: str, session: Optional[ClientSession] = None) -> Optional[FeedSource]:
        """Add the feed at (or advertised by) ``url`` to the feeds file.

        Returns:
            The new source, or None when its URL is already subscribed.

        Raises:
            FeedError: The URL could not be fetched or advertises no feed.
            ConfigError: The feeds file could not be read or written.
        """
        logger.info(f"downloading feed {url}")
        if session is None:
            async with ClientSession() as own_session:
                data = await self.get(url, own_session)
        else:
            data = await self.get(url, session)

        try:
            feed = detect(data)
        except FeedError as e:
            logger.info(f"could not decode as RSS or Atom err={e}")
            feed = None

        if feed is not None:
            source = FeedSource(name=feed.title or url, url=url)
        else:
            logger.info("checking for alternate link")
            title, feed_url = self.find_feed_info(data, url)
            if not title or not feed_url:
                raise FeedError(f"failed to find both required title and url on {url}")
            source = FeedSource(name=title, url=feed_url)

        existing = cfg.load_feed_sources()
        logger.info(f"read feeds config: {len(existing)} feeds.")
        if any(s.url.lower() == source.url.lower() for s in existing):
            logger.info("feed URL already present in existing feeds, no need to subscribe")
            return None

        cfg.save_feed_sources(existing + [source])
        logger.info(f"successfully subscribed to feed title={source.name!r} url={source.url!r}")
        return source

    def _format_client_error(self, error: ClientError) -> str:
        """Describe aiohttp client errors with any available status/errno."""
        parts: List[str] = [error.__class__.__name__]
        status = getattr(error, 'status', None)
        if status is not None:
            parts.append(f"status={status}")
        os_error = getattr(error, 'os_error', None)
        if os_error is not None:
            errno = getattr(os_error, 'errno', None)
            strerror = getattr(os_error, 'strerror', None)
            if errno is not None:
                parts.append(f"errno={errno}")
            if strerror:
                parts.append(str(strerror))
        message = str(error)
        if message:
            parts.append(message)
        return " ".join(parts)

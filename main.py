#!/usr/bin/env python3
"""
Feed Notifier

Fetches every configured feed, picks the entries that are new since the last
run and mails them in a single HTML notification:

1. Load watermarks (the newest entry already reported, per feed)
2. Load feed sources
3. Fetch and decode all enabled sources concurrently
4. Select new entries per feed, bounded by MAX_ENTRIES_PER_FEED
5. Render and send the notification (failed sources are listed at the end)
6. Advance and save the watermarks

Watermarks are only saved after the email went out, so a failed delivery
reports the same entries again on the next run.
"""

import argparse
import asyncio
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aiohttp import ClientSession

from config import APP_VERSION, Config, config, get_logger
from dates import format_time
from errors import ConfigError, FeedError, NotificationError
from fetcher import FeedFetcher, build_credentials
from notifier import EmailNotifier, load_template, render_body
from selector import count_entries, pick_new_data, update_watermarks
from telemetry import get_tracer, init_telemetry, trace_span
from utils import resolve_relative_urls
from watermarks import WatermarkStore, YamlWatermarkStore

logger = get_logger("orchestrator")
init_telemetry("feed-notifier-orchestrator")
_tracer = get_tracer("orchestrator")


class FeedNotifierOrchestrator:
    """Runs one notification cycle and the auxiliary CLI commands."""

    def __init__(
        self,
        cfg: Optional[Config] = None,
        store: Optional[WatermarkStore] = None,
        notifier: Optional[EmailNotifier] = None,
        fetcher: Optional[FeedFetcher] = None,
    ) -> None:
        self.config = cfg or config
        self.store = store or YamlWatermarkStore(self.config.TIMESTAMP_FILE)
        self.notifier = notifier
        self.fetcher = fetcher

    def _get_notifier(self) -> EmailNotifier:
        if self.notifier is None:
            self.config.validate_delivery()
            self.notifier = EmailNotifier.from_config(self.config)
        return self.notifier

    async def _fetch(self, sources):
        if self.fetcher is not None:
            return await self.fetcher.fetch_all(sources)
        async with ClientSession() as session:
            credentials = await build_credentials(self.config, session)
            fetcher = FeedFetcher(self.config.USER_AGENT, self.config.HTTP_TIMEOUT, credentials)
            return await fetcher.fetch_all(sources, session)

    async def _subscribe(self, url):
        if self.fetcher is not None:
            return await self.fetcher.subscribe(self.config, url)
        async with ClientSession() as session:
            credentials = await build_credentials(self.config, session)
            fetcher = FeedFetcher(self.config.USER_AGENT, self.config.HTTP_TIMEOUT, credentials)
            return await fetcher.subscribe(self.config, url, session)

    @trace_span("run_once", tracer_name="orchestrator")
    async def run_once(self) -> Dict[str, Any]:
        """Run a single fetch/select/notify cycle.

        Returns:
            Counts describing the run.

        Raises:
            ConfigError: Configuration, feeds or watermark file problems.
            NotificationError: The template or the email delivery failed.
        """
        notifier = self._get_notifier()

        watermarks = self.store.load()
        template_text = load_template(self.config.EMAIL_TEMPLATE_FILE)

        sources = self.config.load_feed_sources()
        logger.info(f"read feeds config: {len(sources)} feeds.")

        feeds, failures = await self._fetch(sources)

        new_feeds = pick_new_data(feeds, self.config.MAX_ENTRIES_PER_FEED, watermarks)
        summary = {
            'feeds': len(feeds),
            'failures': len(failures),
            'new_entries': count_entries(new_feeds),
            'sent': False,
        }
        if not new_feeds and not failures:
            logger.info("found no new entries")
            return summary
        logger.info(f"found {summary['new_entries']} new entries")

        if self.config.REPLACE_RELATIVE_URLS:
            resolve_relative_urls(new_feeds)

        body = render_body(new_feeds, [failure.failure_feed() for failure in failures], template_text)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, notifier.send, body)
        summary['sent'] = True

        update_watermarks(watermarks, new_feeds)
        self.store.save(watermarks)
        return summary

    async def run(self) -> bool:
        """Run one cycle, turning fatal errors into a failure email and a False result."""
        start_time = time.time()
        try:
            summary = await self.run_once()
        except (ConfigError, NotificationError) as e:
            logger.error(f"Run failed: {e}")
            self._report_failure(e)
            return False
        elapsed_time = time.time() - start_time
        logger.info(
            f"Run completed in {elapsed_time:.1f}s: {summary['feeds']} feeds, "
            f"{summary['failures']} failures, {summary['new_entries']} new entries"
        )
        return True

    def _report_failure(self, error: BaseException) -> None:
        if not self.config.smtp_configured and self.notifier is None:
            logger.info("SMTP not configured, not sending failure email")
            return
        notifier = self.notifier or EmailNotifier.from_config(self.config)
        notifier.send_failure(error)

    async def subscribe(self, url: str) -> bool:
        """Subscribe to the feed at (or advertised by) ``url``."""
        try:
            source = await self._subscribe(url)
        except (FeedError, ConfigError) as e:
            logger.error(f"Subscribe failed: {e}")
            return False
        if source is not None:
            print(f"Subscribed to {source.name} <{source.url}>")
        else:
            print(f"Already subscribed to {url}")
        return True

    def check_status(self) -> Dict[str, Any]:
        """Collect configuration and watermark information."""
        status: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': APP_VERSION,
            'config': self.config.get_config_summary(),
            'checks': {},
        }

        try:
            sources = self.config.load_feed_sources()
            status['checks']['feeds'] = {
                'status': 'ok',
                'total': len(sources),
                'disabled': sum(1 for s in sources if s.disabled),
            }
        except ConfigError as e:
            status['checks']['feeds'] = {'status': 'error', 'message': str(e)}

        try:
            watermarks = self.store.load()
            status['checks']['watermarks'] = {
                'status': 'ok',
                'entries': {key: format_time(value) for key, value in sorted(watermarks.items())},
            }
        except ConfigError as e:
            status['checks']['watermarks'] = {'status': 'error', 'message': str(e)}

        all_ok = all(check.get('status') == 'ok' for check in status['checks'].values())
        status['overall_status'] = 'healthy' if all_ok and self.config.smtp_configured else 'issues_detected'
        return status

    def print_status(self, status: Dict[str, Any]) -> None:
        print(f"\nFeed Notifier {status['version']} status")
        print(f"Time: {status['timestamp']}")
        print(f"Overall: {status['overall_status'].upper()}")
        print(f"SMTP configured: {status['config']['smtp_configured']}")

        feeds = status['checks']['feeds']
        if feeds['status'] == 'ok':
            print(f"\nFeeds: {feeds['total']} configured, {feeds['disabled']} disabled")
        else:
            print(f"\nFeeds: ERROR - {feeds['message']}")

        marks = status['checks']['watermarks']
        if marks['status'] == 'ok':
            print(f"\nWatermarks: {len(marks['entries'])}")
            for key, value in marks['entries'].items():
                print(f"   {value}  {key}")
        else:
            print(f"\nWatermarks: ERROR - {marks['message']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Feed Notifier')
    parser.add_argument('--version', action='version', version=f"feed-notifier {APP_VERSION}")
    parser.add_argument('--config-dir', type=str,
                        help='Directory holding .env, feeds.yaml and timestamps.yaml')
    subparsers = parser.add_subparsers(dest='mode', required=True)
    subparsers.add_parser('run', help='Fetch feeds and email new entries')
    subscribe_parser = subparsers.add_parser('subscribe', help='Add a feed (or a page advertising one)')
    subscribe_parser.add_argument('url', help='Feed or web page URL')
    subparsers.add_parser('status', help='Show configuration and watermark status')
    return parser


def main(argv=None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    cfg = Config(args.config_dir) if args.config_dir else config
    orchestrator = FeedNotifierOrchestrator(cfg)

    try:
        if args.mode == 'run':
            success = asyncio.run(orchestrator.run())
            sys.exit(0 if success else 1)

        elif args.mode == 'subscribe':
            success = asyncio.run(orchestrator.subscribe(args.url))
            sys.exit(0 if success else 1)

        elif args.mode == 'status':
            status = orchestrator.check_status()
            orchestrator.print_status(status)

    except KeyboardInterrupt:
        logger.info("Feed notifier shutting down")


if __name__ == "__main__":
    main()

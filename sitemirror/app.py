"""
Command-line application for the site mirror crawler.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional
from urllib.parse import urlparse

import redis.asyncio as redis

from . import __version__
from .crawler.driver import LoginCredentials, PlaywrightPageDriver, ProxySettings
from .crawler.errors import ConfigError
from .crawler.frontier import Frontier, RedisFrontier
from .crawler.orchestrator import CrawlBudget, CrawlOrchestrator, CrawlSession, CrawlState
from .crawler.processor import PageProcessor
from .crawler.reporter import LoggingObserver, ProgressReporter
from .storage.content_store import FileContentStore
from .utils.config import Config, load_config, validate_config
from .utils.logger import log_system_info, setup_logging
from .utils.monitoring import MetricsCollector, MetricsObserver


class CrawlerApp:
    """Main application class for the site mirror crawler."""

    def __init__(self, config: Config):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.session: Optional[CrawlSession] = None
        self.redis_client: Optional[redis.Redis] = None

    def setup_signal_handlers(self):
        """Translate SIGINT/SIGTERM into a cooperative stop."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.session:
                self.session.stop()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Windows event loops
                signal.signal(signum, lambda s, frame: signal_handler(s))

    def build_driver(self) -> PlaywrightPageDriver:
        browser = self.config.browser
        proxy = None
        if self.config.proxy.enabled:
            proxy = ProxySettings(
                host=self.config.proxy.host,
                port=int(self.config.proxy.port),
                username=self.config.proxy.username,
                password=self.config.proxy.password
            )
        return PlaywrightPageDriver(
            user_agent=browser.user_agent,
            headless=browser.headless,
            navigation_timeout=browser.navigation_timeout,
            profile_path=browser.profile_path,
            proxy=proxy,
            viewport={'width': browser.viewport_width, 'height': browser.viewport_height}
        )

    def build_credentials(self) -> Optional[LoginCredentials]:
        login = self.config.login
        if not login.enabled:
            return None
        return LoginCredentials(
            login_url=login.login_url,
            username=login.username,
            password=login.password,
            username_selector=login.username_selector,
            password_selector=login.password_selector,
            submit_selector=login.submit_selector
        )

    def build_frontier(self, seed_url: str) -> Frontier:
        if self.config.frontier.backend != 'redis':
            return Frontier()
        if self.redis_client is None:
            self.redis_client = redis.Redis(
                host=self.config.redis.host,
                port=self.config.redis.port,
                db=self.config.redis.db,
                password=self.config.redis.password,
                decode_responses=False
            )
        return RedisFrontier(self.redis_client, seed_url, self.config.frontier.key_prefix)

    def build_reporter(self) -> ProgressReporter:
        reporter = ProgressReporter([LoggingObserver()])
        monitoring = self.config.monitoring
        if monitoring.metrics_enabled:
            collector = MetricsCollector()
            collector.start_server(monitoring.prometheus_port)
            reporter.add_observer(MetricsObserver(collector))
        return reporter

    async def run(self, seed_url: str, resume: bool = False) -> int:
        """Run one crawl. Returns the process exit code."""
        crawler = self.config.crawler
        budget = CrawlBudget(max_depth=crawler.max_depth, max_pages=crawler.max_pages)

        self.logger.info("=== SITE MIRROR STARTING ===")
        self.logger.info(f"Seed URL: {seed_url}")
        self.logger.info(f"Max depth: {budget.max_depth}")
        self.logger.info(f"Max pages: {budget.max_pages}")
        self.logger.info(f"Workers: {crawler.workers}")
        self.logger.info(f"Output directory: {self.config.storage.output_directory}")
        self.logger.info(f"Frontier backend: {self.config.frontier.backend}")

        storage = self.config.storage
        store = FileContentStore(
            output_directory=storage.output_directory,
            download_resources=storage.download_resources,
            resource_timeout=storage.resource_timeout,
            user_agent=self.config.browser.user_agent
        )

        try:
            async with store:
                orchestrator = CrawlOrchestrator(
                    driver_factory=self.build_driver,
                    store=store,
                    reporter=self.build_reporter(),
                    processor=PageProcessor(
                        store,
                        wait_time=crawler.wait_time,
                        capture_interactive_elements=crawler.capture_interactive_elements
                    ),
                    workers=crawler.workers,
                    credentials=self.build_credentials(),
                    frontier_factory=self.build_frontier
                )

                self.session = orchestrator.start(seed_url, budget, resume=resume)
                self.setup_signal_handlers()
                await self.session.wait()

                frontier = self.session.frontier
                if (self.session.state is CrawlState.COMPLETED
                        and isinstance(frontier, RedisFrontier)
                        and not self.config.frontier.keep_on_complete):
                    await frontier.clear()

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if self.session is not None:
                await self.session.frontier.close()
            self.logger.info("=== SITE MIRROR FINISHED ===")

        return 1 if self.session.state is CrawlState.FATAL else 0


def is_valid_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mirror a website breadth-first with a headless browser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py https://example.com                 # Crawl with config.yaml
  python main.py https://example.com --max-pages 20  # Limit to 20 pages
  python main.py https://example.com --workers 4     # Four browser pages
  python main.py --config site.yaml --resume         # Continue a Redis-backed crawl
        """
    )

    parser.add_argument('url', nargs='?', help='Seed URL (default: crawler.seed_url)')
    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth from the seed')
    parser.add_argument('--max-pages', type=int, help='Maximum number of pages to attempt')
    parser.add_argument('--wait-time', type=float, help='Seconds to let each page settle')
    parser.add_argument('--workers', type=int, help='Number of concurrent browser pages')
    parser.add_argument('--output', help='Output directory for mirrored pages')
    parser.add_argument('--profile', help='Browser profile directory')
    parser.add_argument('--headful', action='store_true', help='Show the browser window')

    parser.add_argument('--login-url', help='Login form URL')
    parser.add_argument('--username', help='Login username')
    parser.add_argument('--password', help='Login password')

    parser.add_argument('--proxy-host', help='Proxy host')
    parser.add_argument('--proxy-port', type=int, help='Proxy port')
    parser.add_argument('--proxy-username', help='Proxy username')
    parser.add_argument('--proxy-password', help='Proxy password')

    parser.add_argument('--resume', action='store_true',
                        help='Continue a previous crawl from the Redis frontier')
    parser.add_argument('--version', action='version',
                        version=f'sitemirror {__version__}')
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Command-line flags take precedence over the configuration file."""
    overrides = [
        (config.crawler, 'max_depth', args.max_depth),
        (config.crawler, 'max_pages', args.max_pages),
        (config.crawler, 'wait_time', args.wait_time),
        (config.crawler, 'workers', args.workers),
        (config.storage, 'output_directory', args.output),
        (config.browser, 'profile_path', args.profile),
        (config.login, 'login_url', args.login_url),
        (config.login, 'username', args.username),
        (config.login, 'password', args.password),
        (config.proxy, 'host', args.proxy_host),
        (config.proxy, 'port', args.proxy_port),
        (config.proxy, 'username', args.proxy_username),
        (config.proxy, 'password', args.proxy_password),
    ]
    for section, name, value in overrides:
        if value is not None:
            setattr(section, name, value)

    if args.headful:
        config.browser.headless = False
    if args.url:
        config.crawler.seed_url = args.url
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
        validate_config(config)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    seed_url = config.crawler.seed_url
    if not seed_url or not is_valid_url(seed_url):
        print("Error: a valid http(s) seed URL is required")
        return 1

    setup_logging(config.logging)
    log_system_info()

    app = CrawlerApp(config)
    try:
        return asyncio.run(app.run(seed_url, resume=args.resume))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1

"""
Prometheus metrics for crawl sessions.
"""

import logging
from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest, start_http_server

from ..crawler.reporter import CompleteEvent, CrawlObserver, ErrorEvent, ProgressEvent


class MetricsCollector:
    """Crawl counters exported on a private registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()

        self.pages_crawled = Counter(
            'sitemirror_pages_crawled_total',
            'Total number of URLs attempted',
            registry=self.registry
        )
        self.successful_pages = Counter(
            'sitemirror_successful_pages_total',
            'Total number of pages mirrored',
            registry=self.registry
        )
        self.failed_pages = Counter(
            'sitemirror_failed_pages_total',
            'Total number of pages that failed',
            registry=self.registry
        )
        self.skipped_pages = Counter(
            'sitemirror_skipped_pages_total',
            'Total number of frontier entries skipped',
            registry=self.registry
        )
        self.errors = Counter(
            'sitemirror_errors_total',
            'Total number of crawl error notifications',
            registry=self.registry
        )
        self.progress = Gauge(
            'sitemirror_progress_percent',
            'Pages crawled as a share of the page budget',
            registry=self.registry
        )
        self.crawls_completed = Counter(
            'sitemirror_crawls_completed_total',
            'Total number of finished crawl sessions',
            registry=self.registry
        )

        # Last seen totals, used to turn snapshots into counter increments
        self._last: Dict[str, int] = {
            'pages_crawled': 0,
            'successful_pages': 0,
            'failed_pages': 0,
            'skipped_pages': 0
        }

    def update_totals(self, **totals: int):
        """Advance counters to the given running totals."""
        for name, value in totals.items():
            delta = value - self._last.get(name, 0)
            if delta > 0:
                getattr(self, name).inc(delta)
                self._last[name] = value

    def start_server(self, port: int):
        """Expose the registry over HTTP."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def export_text(self) -> str:
        return generate_latest(self.registry).decode('utf-8')


class MetricsObserver(CrawlObserver):
    """Feeds reporter notifications into a MetricsCollector."""

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    async def on_progress(self, event: ProgressEvent):
        self.collector.update_totals(
            pages_crawled=event.pages_crawled,
            successful_pages=event.successful_pages,
            failed_pages=event.failed_pages,
            skipped_pages=event.skipped_pages
        )
        self.collector.progress.set(event.progress_percent)

    async def on_error(self, event: ErrorEvent):
        self.collector.errors.inc()

    async def on_complete(self, event: CompleteEvent):
        self.collector.update_totals(
            pages_crawled=event.pages_crawled,
            successful_pages=event.successful_pages,
            failed_pages=event.failed_pages,
            skipped_pages=event.skipped_pages
        )
        self.collector.crawls_completed.inc()

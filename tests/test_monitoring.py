"""
Tests for Prometheus metrics.
"""

from prometheus_client import CollectorRegistry

from sitemirror.crawler.reporter import CompleteEvent, ErrorEvent, ProgressEvent
from sitemirror.utils.monitoring import MetricsCollector, MetricsObserver


def sample(collector, name):
    return collector.registry.get_sample_value(name)


def test_update_totals_only_counts_increments():
    collector = MetricsCollector(CollectorRegistry())

    collector.update_totals(pages_crawled=2, successful_pages=2)
    collector.update_totals(pages_crawled=5, successful_pages=4, failed_pages=1)
    collector.update_totals(pages_crawled=5)

    assert sample(collector, 'sitemirror_pages_crawled_total') == 5
    assert sample(collector, 'sitemirror_successful_pages_total') == 4
    assert sample(collector, 'sitemirror_failed_pages_total') == 1


async def test_observer_tracks_events():
    collector = MetricsCollector()
    observer = MetricsObserver(collector)

    await observer.on_progress(ProgressEvent(url='https://x.test/', pages_crawled=1,
                                             successful_pages=1, failed_pages=0,
                                             skipped_pages=0, progress_percent=50.0))
    await observer.on_error(ErrorEvent(message='boom', url='https://x.test/b'))
    await observer.on_complete(CompleteEvent(pages_crawled=2, successful_pages=1,
                                             failed_pages=1, skipped_pages=3))

    assert sample(collector, 'sitemirror_progress_percent') == 50.0
    assert sample(collector, 'sitemirror_errors_total') == 1
    assert sample(collector, 'sitemirror_pages_crawled_total') == 2
    assert sample(collector, 'sitemirror_skipped_pages_total') == 3
    assert sample(collector, 'sitemirror_crawls_completed_total') == 1


def test_export_text_lists_metrics():
    text = MetricsCollector().export_text()

    assert 'sitemirror_pages_crawled_total' in text
    assert 'sitemirror_progress_percent' in text

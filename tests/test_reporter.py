"""
Tests for progress reporting and observers.
"""

import logging

from sitemirror.crawler.orchestrator import CrawlBudget, CrawlCounters
from sitemirror.crawler.reporter import (
    CallbackObserver, CrawlObserver, LoggingObserver, ProgressReporter
)
from tests.conftest import RecordingObserver


class ExplodingObserver(CrawlObserver):
    async def on_progress(self, event):
        raise RuntimeError("observer bug")

    async def on_complete(self, event):
        raise RuntimeError("observer bug")


def counters(**values):
    return CrawlCounters(**values)


async def test_progress_percent_is_relative_to_page_budget():
    observer = RecordingObserver()
    reporter = ProgressReporter([observer])

    await reporter.report_progress(
        'https://x.test/', counters(pages_crawled=5, successful_pages=4, failed_pages=1),
        CrawlBudget(max_depth=1, max_pages=20)
    )

    (event,) = observer.of_kind('progress')
    assert event.progress_percent == 25.0
    assert event.successful_pages == 4
    assert event.failed_pages == 1


async def test_failing_observer_does_not_block_others():
    observer = RecordingObserver()
    reporter = ProgressReporter([ExplodingObserver(), observer])

    await reporter.report_progress('https://x.test/', counters(pages_crawled=1),
                                   CrawlBudget(max_depth=0, max_pages=1))
    await reporter.report_complete(counters(pages_crawled=1))

    assert len(observer.of_kind('progress')) == 1
    assert len(observer.of_kind('complete')) == 1


async def test_error_event_carries_url():
    observer = RecordingObserver()
    reporter = ProgressReporter()
    reporter.add_observer(observer)

    await reporter.report_error("Error processing URL (https://x.test/b): navigation: boom",
                                url='https://x.test/b')

    (event,) = observer.of_kind('error')
    assert event.url == 'https://x.test/b'
    assert 'navigation' in event.message


async def test_callback_observer_accepts_sync_and_async_callables():
    progress, completed = [], []

    async def on_complete(payload):
        completed.append(payload)

    reporter = ProgressReporter([CallbackObserver(on_progress=progress.append,
                                                  on_complete=on_complete)])

    await reporter.report_progress('https://x.test/', counters(pages_crawled=1, successful_pages=1),
                                   CrawlBudget(max_depth=0, max_pages=2))
    await reporter.report_error("ignored")
    await reporter.report_complete(counters(pages_crawled=1, successful_pages=1))

    assert progress[0]['url'] == 'https://x.test/'
    assert progress[0]['progress_percent'] == 50.0
    assert completed == [{'pages_crawled': 1, 'successful_pages': 1,
                          'failed_pages': 0, 'skipped_pages': 0}]


async def test_logging_observer_writes_summary(caplog):
    reporter = ProgressReporter([LoggingObserver()])

    with caplog.at_level(logging.INFO, logger='sitemirror.crawler.reporter'):
        await reporter.report_complete(counters(pages_crawled=3, successful_pages=2, failed_pages=1))

    assert "CRAWL COMPLETED" in caplog.text
    assert "Failed pages: 1" in caplog.text

"""
Progress reporting: turns orchestrator events into observer notifications.
"""

import inspect
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional


@dataclass
class ProgressEvent:
    url: str
    pages_crawled: int
    successful_pages: int
    failed_pages: int
    skipped_pages: int
    progress_percent: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ErrorEvent:
    message: str
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompleteEvent:
    pages_crawled: int
    successful_pages: int
    failed_pages: int
    skipped_pages: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class CrawlObserver:
    """Receiver of crawl notifications. All hooks default to no-ops."""

    async def on_progress(self, event: ProgressEvent):
        pass

    async def on_error(self, event: ErrorEvent):
        pass

    async def on_complete(self, event: CompleteEvent):
        pass


class LoggingObserver(CrawlObserver):
    """Writes every notification to the log."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def on_progress(self, event: ProgressEvent):
        self.logger.info(
            f"Crawl Progress: {event.progress_percent:.1f}% "
            f"Crawled={event.pages_crawled}, "
            f"Succeeded={event.successful_pages}, "
            f"Failed={event.failed_pages}, "
            f"Skipped={event.skipped_pages} "
            f"({event.url})"
        )

    async def on_error(self, event: ErrorEvent):
        self.logger.error(f"Crawl error: {event.message}")

    async def on_complete(self, event: CompleteEvent):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Pages crawled: {event.pages_crawled}")
        self.logger.info(f"Successful pages: {event.successful_pages}")
        self.logger.info(f"Failed pages: {event.failed_pages}")
        self.logger.info(f"Skipped pages: {event.skipped_pages}")


class CallbackObserver(CrawlObserver):
    """Adapts plain callables, sync or async, receiving the event as a dict."""

    def __init__(self, on_progress: Optional[Callable] = None,
                 on_error: Optional[Callable] = None,
                 on_complete: Optional[Callable] = None):
        self._callbacks = {
            'progress': on_progress,
            'error': on_error,
            'complete': on_complete
        }

    async def _call(self, kind: str, payload: Dict[str, Any]):
        callback = self._callbacks.get(kind)
        if callback is None:
            return
        result = callback(payload)
        if inspect.isawaitable(result):
            await result

    async def on_progress(self, event: ProgressEvent):
        await self._call('progress', event.to_dict())

    async def on_error(self, event: ErrorEvent):
        await self._call('error', event.to_dict())

    async def on_complete(self, event: CompleteEvent):
        await self._call('complete', event.to_dict())


class ProgressReporter:
    """
    Fans events out to observers.
    Never raises: a failing observer is logged and the others still get the event.
    """

    def __init__(self, observers: Optional[Iterable[CrawlObserver]] = None):
        self.observers: List[CrawlObserver] = list(observers or [])
        self.logger = logging.getLogger(__name__)

    def add_observer(self, observer: CrawlObserver):
        self.observers.append(observer)

    async def report_progress(self, url: str, counters, budget):
        try:
            percent = counters.pages_crawled / budget.max_pages * 100 if budget.max_pages else 0.0
            event = ProgressEvent(
                url=url,
                pages_crawled=counters.pages_crawled,
                successful_pages=counters.successful_pages,
                failed_pages=counters.failed_pages,
                skipped_pages=counters.skipped_pages,
                progress_percent=percent
            )
        except Exception as e:
            self.logger.error(f"Could not build progress event for {url}: {e}")
            return
        await self._deliver('on_progress', event)

    async def report_error(self, message: str, url: Optional[str] = None):
        await self._deliver('on_error', ErrorEvent(message=message, url=url))

    async def report_complete(self, counters):
        try:
            event = CompleteEvent(
                pages_crawled=counters.pages_crawled,
                successful_pages=counters.successful_pages,
                failed_pages=counters.failed_pages,
                skipped_pages=counters.skipped_pages
            )
        except Exception as e:
            self.logger.error(f"Could not build completion event: {e}")
            return
        await self._deliver('on_complete', event)

    async def _deliver(self, hook: str, event):
        for observer in self.observers:
            try:
                await getattr(observer, hook)(event)
            except Exception as e:
                self.logger.error(
                    f"Observer {type(observer).__name__}.{hook} failed: {e}", exc_info=True
                )

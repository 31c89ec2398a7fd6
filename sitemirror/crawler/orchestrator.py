"""
Crawl orchestrator that owns the frontier, applies the crawl budget and
sequences page processing for a crawl session.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional

from .driver import LoginCredentials, PageDriver
from .errors import UnexpectedError
from .frontier import Frontier, FrontierEntry
from .processor import Failure, PageOutcome, PageProcessor, SkipCause, Skipped, Success
from .reporter import ProgressReporter
from ..storage.content_store import ContentStore
from ..utils.logger import get_crawler_logger


class CrawlState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FATAL = "fatal"


@dataclass(frozen=True)
class CrawlBudget:
    """Bounds of one crawl: link hops from the seed and attempted pages."""
    max_depth: int
    max_pages: int

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError("max_depth must be non-negative")
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")


@dataclass
class CrawlCounters:
    """Monotonic counters, mutated only by the orchestrator."""
    pages_crawled: int = 0
    successful_pages: int = 0
    failed_pages: int = 0
    skipped_pages: int = 0

    def snapshot(self) -> 'CrawlCounters':
        return replace(self)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class StopController:
    """Cooperative cancellation token checked before every frontier pop."""

    def __init__(self):
        self._stop_requested = False

    def request_stop(self):
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested


class CrawlSession:
    """
    Handle to one traversal. Owns the frontier, counters, budget and
    cancellation token; stop() takes effect before the next frontier pop.
    """

    def __init__(self, seed_url: str, budget: CrawlBudget, frontier: Frontier,
                 stop_controller: Optional[StopController] = None):
        self.seed_url = seed_url
        self.budget = budget
        self.frontier = frontier
        self.counters = CrawlCounters()
        self.stop_controller = stop_controller or StopController()
        self.state = CrawlState.IDLE
        self.error: Optional[BaseException] = None

        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        # Claimed but not yet recorded attempts
        self.in_flight = 0
        self._task: Optional[asyncio.Task] = None
        self.logger = logging.getLogger(__name__)

    def stop(self):
        """Request a cooperative stop. In-flight pages are allowed to finish."""
        if not self.stop_controller.stop_requested:
            self.logger.info(f"Stop requested for crawl of {self.seed_url}")
        self.stop_controller.request_stop()

    @property
    def stop_requested(self) -> bool:
        return self.stop_controller.stop_requested

    @property
    def is_running(self) -> bool:
        return self.state is CrawlState.RUNNING

    @property
    def progress_percent(self) -> float:
        return self.counters.pages_crawled / self.budget.max_pages * 100

    @property
    def elapsed_time(self) -> float:
        if self.start_time is None:
            return 0.0
        return (self.end_time or time.time()) - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.counters.pages_crawled / elapsed_minutes if elapsed_minutes > 0 else 0

    def done(self) -> bool:
        return self.state in (CrawlState.COMPLETED, CrawlState.STOPPED, CrawlState.FATAL)

    async def wait(self) -> CrawlCounters:
        """Wait for the crawl task and return the final counters."""
        if self._task is not None:
            await self._task
        return self.counters.snapshot()


class CrawlOrchestrator:
    """
    Runs crawl sessions: seeds the frontier, pops (url, depth) entries in
    FIFO order, hands them to the page processor and folds outcomes back
    into the frontier and counters.

    With workers > 1 several drivers process distinct entries concurrently.
    Claims (visited check and mark) and counter updates happen under one
    condition, so a URL is attempted at most once and progress counters
    never go backwards.
    """

    def __init__(self, driver_factory: Callable[[], PageDriver], store: ContentStore,
                 reporter: Optional[ProgressReporter] = None,
                 processor: Optional[PageProcessor] = None, workers: int = 1,
                 credentials: Optional[LoginCredentials] = None,
                 frontier_factory: Optional[Callable[[str], Frontier]] = None):
        if workers < 1:
            raise ValueError("workers must be at least 1")

        self.driver_factory = driver_factory
        self.store = store
        self.reporter = reporter or ProgressReporter()
        self.processor = processor or PageProcessor(store)
        self.workers = workers
        self.credentials = credentials
        self.frontier_factory = frontier_factory or (lambda seed_url: Frontier())

    def create_session(self, seed_url: str, budget: CrawlBudget) -> CrawlSession:
        return CrawlSession(seed_url, budget, self.frontier_factory(seed_url))

    def start(self, seed_url: str, budget: CrawlBudget, resume: bool = False) -> CrawlSession:
        """Schedule a crawl on the running loop and return its handle."""
        session = self.create_session(seed_url, budget)
        session.state = CrawlState.RUNNING
        session._task = asyncio.create_task(self.run(session, resume=resume))
        return session

    async def crawl(self, seed_url: str, budget: CrawlBudget, resume: bool = False) -> CrawlSession:
        """Run a crawl to completion."""
        session = self.start(seed_url, budget, resume=resume)
        await session.wait()
        return session

    async def run(self, session: CrawlSession, resume: bool = False) -> CrawlCounters:
        """
        Drive a session to a terminal state. Always releases every driver and
        emits exactly one completion notification.
        """
        if session.state not in (CrawlState.IDLE, CrawlState.RUNNING):
            raise RuntimeError(f"Session already finished ({session.state.value})")

        logger = get_crawler_logger(__name__, seed_url=session.seed_url)
        session.state = CrawlState.RUNNING
        session.start_time = time.time()
        condition = asyncio.Condition()

        logger.info(f"Starting crawl of {session.seed_url} "
                    f"(max_depth={session.budget.max_depth}, "
                    f"max_pages={session.budget.max_pages}, workers={self.workers})")

        try:
            await self._prepare_frontier(session, resume, logger)
            workers = [
                asyncio.create_task(self._worker(session, condition, f"worker-{i}"))
                for i in range(self.workers)
            ]
            await asyncio.gather(*workers)

        except asyncio.CancelledError:
            session.stop()
            await self._finish(session, logger)
            raise
        except Exception as e:
            self._record_fatal(session, e, logger)

        await self._finish(session, logger)
        return session.counters.snapshot()

    async def _prepare_frontier(self, session: CrawlSession, resume: bool, logger):
        """Reload a previous run when resuming, otherwise start from an empty frontier."""
        frontier = session.frontier
        if resume:
            await frontier.initialize()
            if not await frontier.is_empty():
                logger.info(f"Resuming crawl with {len(frontier)} queued URLs")
                return
            logger.info("Nothing queued to resume, starting a fresh crawl")

        # The visited set lives for one session
        await frontier.clear()
        await frontier.seed(session.seed_url)

    async def _finish(self, session: CrawlSession, logger):
        session.end_time = time.time()

        if session.error is not None:
            session.state = CrawlState.FATAL
            await self.reporter.report_error(f"Unexpected error: {session.error}")
        elif session.stop_requested:
            session.state = CrawlState.STOPPED
        else:
            session.state = CrawlState.COMPLETED

        logger.info(
            f"Crawl {session.state.value}: {session.counters.to_dict()} "
            f"in {session.elapsed_time:.2f}s "
            f"({session.pages_per_minute:.1f} pages/min, "
            f"{len(session.frontier)} URLs left in queue)"
        )
        await self.reporter.report_complete(session.counters.snapshot())

    def _record_fatal(self, session: CrawlSession, error: Exception, logger):
        """Keep the first fatal error and stop every worker."""
        if session.error is None:
            session.error = error if isinstance(error, UnexpectedError) else UnexpectedError(error)
            logger.error(f"Fatal crawl error: {error}", exc_info=error)
        session.stop()

    async def _worker(self, session: CrawlSession, condition: asyncio.Condition, worker_id: str):
        logger = get_crawler_logger(__name__, seed_url=session.seed_url, worker=worker_id)
        logger.debug(f"Worker {worker_id} started")

        try:
            async with self.driver_factory() as driver:
                if self.credentials:
                    await driver.authenticate(self.credentials)

                while True:
                    entry = await self._claim_next(session, condition, logger)
                    if entry is None:
                        break

                    try:
                        outcome = await self.processor.process(driver, entry.url)
                        await self._record_outcome(session, condition, entry, outcome, logger)
                    finally:
                        async with condition:
                            session.in_flight -= 1
                            condition.notify_all()

                    if isinstance(outcome, Failure) and outcome.partial_content is not None:
                        await self._save_partial(entry.url, outcome.partial_content, logger)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_fatal(session, e, logger)
            async with condition:
                condition.notify_all()

        logger.debug(f"Worker {worker_id} finished")

    async def _claim_next(self, session: CrawlSession, condition: asyncio.Condition,
                          logger) -> Optional[FrontierEntry]:
        """
        Pop the next attemptable entry, or None when the crawl should end.
        Skips already-visited and too-deep entries without counting them as crawled.
        """
        budget = session.budget
        async with condition:
            while True:
                if session.stop_requested:
                    return None
                if session.counters.pages_crawled + session.in_flight >= budget.max_pages:
                    logger.debug(f"Reached max pages limit: {budget.max_pages}")
                    return None

                entry = await session.frontier.pop_next()
                if entry is None:
                    if session.in_flight == 0:
                        return None
                    # Another worker may still discover links
                    await condition.wait()
                    continue

                skipped = None
                if await session.frontier.is_visited(entry.url):
                    skipped = Skipped(url=entry.url, cause=SkipCause.ALREADY_VISITED)
                elif entry.depth > budget.max_depth:
                    skipped = Skipped(url=entry.url, cause=SkipCause.TOO_DEEP)

                if skipped is not None:
                    session.counters.skipped_pages += 1
                    logger.log_url_event(logging.DEBUG, entry.url,
                                         f"Skipping {entry.url} ({skipped.cause.value})")
                    continue

                await session.frontier.mark_visited(entry.url)
                session.in_flight += 1
                return entry

    async def _record_outcome(self, session: CrawlSession, condition: asyncio.Condition,
                              entry: FrontierEntry, outcome: PageOutcome, logger):
        """Fold an outcome into counters and frontier, then notify observers."""
        counters = session.counters
        async with condition:
            if isinstance(outcome, Success):
                counters.pages_crawled += 1
                counters.successful_pages += 1

                added = 0
                for link in outcome.links:
                    if await session.frontier.enqueue(link, entry.depth + 1, parent_url=entry.url):
                        added += 1
                logger.log_url_event(logging.DEBUG, entry.url,
                                     f"Queued {added} new URLs from {entry.url}")

                await self.reporter.report_progress(entry.url, counters.snapshot(), session.budget)

            elif isinstance(outcome, Failure):
                counters.pages_crawled += 1
                counters.failed_pages += 1
                await self.reporter.report_error(
                    f"Error processing URL ({entry.url}): {outcome.reason.value}: {outcome.message}",
                    url=entry.url
                )

            else:
                counters.skipped_pages += 1

    async def _save_partial(self, url: str, content: str, logger):
        try:
            await self.store.save_partial(url, content)
        except Exception as e:
            logger.log_url_event(logging.ERROR, url,
                                 f"Error saving partial content for {url}: {e}")

"""
Page processor: drives one URL through navigation, extraction and persistence.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from .driver import PageDriver, RenderedPage
from .errors import NavigationError, PersistenceError
from .parser import filter_links
from ..storage.content_store import ContentStore, StoredDocument

MAX_WAIT_TIME = 60.0


class FailureReason(Enum):
    NAVIGATION = "navigation"
    PERSISTENCE = "persistence"
    EXTRACTION = "extraction"
    UNEXPECTED = "unexpected"


class SkipCause(Enum):
    ALREADY_VISITED = "already_visited"
    TOO_DEEP = "too_deep"


@dataclass
class Success:
    url: str
    content: str
    resources: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    stored: Optional[StoredDocument] = None


@dataclass
class Failure:
    url: str
    reason: FailureReason
    message: str
    partial_content: Optional[str] = None


@dataclass
class Skipped:
    url: str
    cause: SkipCause


PageOutcome = Union[Success, Failure, Skipped]


class PageProcessor:
    """
    Runs the per-URL pipeline:
    navigate -> dismiss overlays -> settle -> content/resources -> save -> links.

    Per-URL errors never propagate; they are folded into a Failure carrying
    whatever content could be captured before the error.
    """

    def __init__(self, store: ContentStore, wait_time: float = 5.0,
                 capture_interactive_elements: bool = False):
        self.store = store
        self.wait_time = min(max(wait_time, 0.0), MAX_WAIT_TIME)
        self.capture_interactive_elements = capture_interactive_elements
        self.logger = logging.getLogger(__name__)

    async def process(self, driver: PageDriver, url: str) -> PageOutcome:
        start_time = time.time()
        page: Optional[RenderedPage] = None
        content: Optional[str] = None
        stage = FailureReason.NAVIGATION

        try:
            page = await driver.navigate(url)
            stage = FailureReason.UNEXPECTED  # overlay dismissal and settle delay

            try:
                await driver.dismiss_overlays(page)
            except Exception as e:
                self.logger.warning(f"Overlay dismissal failed on {url}: {e}")

            if self.wait_time:
                await asyncio.sleep(self.wait_time)

            stage = FailureReason.EXTRACTION
            content = await driver.extract_content(page)
            resources = list(await driver.extract_resources(page))

            stage = FailureReason.PERSISTENCE
            stored = await self.store.save(url, content, resources)

            stage = FailureReason.EXTRACTION
            links = filter_links(await driver.extract_links(page))

        except NavigationError as e:
            return await self._failure(driver, url, page, content, FailureReason.NAVIGATION, e)
        except PersistenceError as e:
            return await self._failure(driver, url, page, content, FailureReason.PERSISTENCE, e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return await self._failure(driver, url, page, content, stage, e)

        if self.capture_interactive_elements:
            await self._capture_interactive_elements(driver, page)

        self.logger.debug(f"Processed {url} in {time.time() - start_time:.2f}s "
                          f"({len(resources)} resources, {len(links)} links)")
        return Success(url=url, content=content, resources=resources, links=links, stored=stored)

    async def _failure(self, driver: PageDriver, url: str, page: Optional[RenderedPage],
                       content: Optional[str], reason: FailureReason,
                       error: Exception) -> Failure:
        self.logger.error(f"Error processing {url} ({reason.value}): {error}")

        partial = content
        if partial is None and page is not None:
            try:
                partial = await driver.extract_content(page)
            except Exception as e:
                self.logger.debug(f"No partial content for {url}: {e}")

        return Failure(url=url, reason=reason, message=str(error), partial_content=partial)

    async def _capture_interactive_elements(self, driver: PageDriver, page: RenderedPage):
        try:
            elements = await driver.extract_interactive_elements(page)
            await self.store.save_interactive_elements(page.url, elements)
        except Exception as e:
            self.logger.error(f"Error extracting interactive elements for {page.url}: {e}")

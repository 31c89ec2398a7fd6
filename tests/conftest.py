"""
Shared doubles for the page driver, content store, Redis and observers.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from sitemirror.crawler.driver import InteractiveElement, PageDriver, RenderedPage
from sitemirror.crawler.errors import NavigationError, PersistenceError
from sitemirror.crawler.processor import PageProcessor
from sitemirror.crawler.reporter import CrawlObserver, ProgressReporter
from sitemirror.storage.content_store import ContentStore, StoredDocument


class FakeSite:
    """In-memory site graph: url -> links, with optional per-URL behaviours."""

    def __init__(self, pages: Dict[str, List[str]]):
        self.pages = pages
        self.navigations: List[str] = []
        self.unreachable = set()
        self.content_errors = set()
        self.on_navigate: Optional[Callable[[str], None]] = None

    def content_for(self, url: str) -> str:
        links = ''.join(f'<a href="{link}">{link}</a>' for link in self.pages.get(url, []))
        return f'<html><body><h1>{url}</h1>{links}<img src="/logo.png"></body></html>'


class FakeDriver(PageDriver):
    def __init__(self, site: FakeSite):
        self.site = site
        self.started = 0
        self.released = 0
        self.authenticated_with = None

    async def start(self):
        self.started += 1

    async def release(self):
        self.released += 1

    async def navigate(self, url: str) -> RenderedPage:
        self.site.navigations.append(url)
        if self.site.on_navigate:
            self.site.on_navigate(url)
        if url in self.site.unreachable or url not in self.site.pages:
            raise NavigationError(url, f"unreachable: {url}")
        return RenderedPage(url=url, final_url=url, status_code=200, handle=url)

    async def dismiss_overlays(self, page: RenderedPage):
        pass

    async def extract_content(self, page: RenderedPage) -> str:
        if page.url in self.site.content_errors:
            raise RuntimeError("page crashed")
        return self.site.content_for(page.url)

    async def extract_resources(self, page: RenderedPage) -> List[str]:
        return [page.url.rstrip('/') + '/logo.png']

    async def extract_links(self, page: RenderedPage) -> List[str]:
        return list(self.site.pages.get(page.url, []))

    async def extract_interactive_elements(self, page: RenderedPage) -> List[InteractiveElement]:
        return [InteractiveElement(type='button', text='Go')]

    async def authenticate(self, credentials):
        self.authenticated_with = credentials


class FakeStore(ContentStore):
    def __init__(self):
        self.saved: List[str] = []
        self.partials: List[tuple] = []
        self.interactive: Dict[str, list] = {}
        self.fail_urls = set()
        self.fail_partial = False

    async def save(self, url: str, content: str, resources: Sequence[str]) -> StoredDocument:
        if url in self.fail_urls:
            raise PersistenceError(f"disk full: {url}")
        self.saved.append(url)
        return StoredDocument(url=url, path=f"/mirror/{len(self.saved)}.html",
                              content_hash=str(hash(content)))

    async def save_partial(self, url: str, content: str) -> StoredDocument:
        self.partials.append((url, content))
        if self.fail_partial:
            raise PersistenceError("partial write failed")
        return StoredDocument(url=url, path="/mirror/partial.html",
                              content_hash=str(hash(content)), partial=True)

    async def save_interactive_elements(self, url, elements):
        self.interactive[url] = list(elements)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the frontier."""

    def __init__(self):
        self.lists = {}
        self.sets = {}
        self.closed = False
        self.fail_writes = False

    async def rpush(self, key, value):
        if self.fail_writes:
            raise ConnectionError("redis down")
        self.lists.setdefault(key, []).append(value.encode('utf-8'))

    async def lpop(self, key):
        items = self.lists.get(key) or []
        return items.pop(0) if items else None

    async def lrange(self, key, start, end):
        return list(self.lists.get(key, []))

    async def sadd(self, key, value):
        if self.fail_writes:
            raise ConnectionError("redis down")
        self.sets.setdefault(key, set()).add(value.encode('utf-8'))

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def delete(self, *keys):
        for key in keys:
            self.lists.pop(key, None)
            self.sets.pop(key, None)

    async def close(self):
        self.closed = True


class RecordingObserver(CrawlObserver):
    def __init__(self):
        self.events = []

    async def on_progress(self, event):
        self.events.append(('progress', event))

    async def on_error(self, event):
        self.events.append(('error', event))

    async def on_complete(self, event):
        self.events.append(('complete', event))

    def of_kind(self, kind: str):
        return [event for k, event in self.events if k == kind]


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def reporter(observer):
    return ProgressReporter([observer])


@pytest.fixture
def processor(store):
    return PageProcessor(store, wait_time=0)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)

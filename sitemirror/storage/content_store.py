"""
Content storage for mirrored pages.
Pages are written under a deterministic path derived from their URL.
"""

import asyncio
import hashlib
import json
import logging
import os
import posixpath
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse

import aiohttp
from aiohttp import ClientError, ClientSession, ClientTimeout

from ..crawler.driver import InteractiveElement
from ..crawler.errors import PersistenceError
from ..crawler.parser import absolutize_document, is_crawlable_url

MAX_FILE_NAME_LENGTH = 100


@dataclass
class StoredDocument:
    """What the store wrote for one URL."""
    url: str
    path: str
    content_hash: str
    resources_saved: int = 0
    partial: bool = False


def url_digest(url: str) -> str:
    """Short md5 prefix used to keep file names unique per URL."""
    return hashlib.md5(url.encode('utf-8')).hexdigest()[:8]


def shorten_file_name(name: str, max_length: int = MAX_FILE_NAME_LENGTH) -> str:
    """Trim an over-long file name while keeping its extension."""
    if len(name) <= max_length:
        return name
    stem, ext = os.path.splitext(name)
    if len(ext) >= max_length:
        return name[:max_length]
    return stem[:max_length - len(ext)] + ext


class ContentStore:
    """Abstract persistence capability consumed by the crawler core."""

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self):
        pass

    async def save(self, url: str, content: str, resources: Sequence[str]) -> StoredDocument:
        raise NotImplementedError

    async def save_partial(self, url: str, content: str) -> StoredDocument:
        raise NotImplementedError

    async def save_interactive_elements(self, url: str,
                                        elements: Sequence[InteractiveElement]) -> Optional[Path]:
        return None

    async def close(self):
        pass


class FileContentStore(ContentStore):
    """
    Mirrors pages into a directory tree:

        <root>/<host>/<dir of path>/<md5[:8]>_<basename>.html
        <root>/<host>/partial/<md5[:8]>_partial.html
        <root>/<host>/interactive_elements/<md5[:8]>_interactive_elements.json

    Resources referenced by a page are downloaded next to it. An index of
    stored URLs with their content hashes is kept in <root>/index.json.
    """

    def __init__(self, output_directory: str = "downloads", download_resources: bool = True,
                 resource_timeout: float = 30.0, user_agent: Optional[str] = None,
                 max_concurrent_downloads: int = 5):
        self.output_directory = Path(output_directory)
        self.download_resources = download_resources
        self.resource_timeout = resource_timeout
        self.user_agent = user_agent
        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None
        self.semaphore = asyncio.Semaphore(max_concurrent_downloads)
        self.index_file = self.output_directory / 'index.json'
        self._index: Dict[str, Dict[str, Any]] = {}

        self.stats = {
            'pages_saved': 0,
            'partial_pages_saved': 0,
            'resources_saved': 0,
            'resource_errors': 0
        }

    async def initialize(self):
        """Create the output directory and HTTP session."""
        try:
            self.output_directory.mkdir(parents=True, exist_ok=True)
            if self.index_file.exists():
                with open(self.index_file, 'r', encoding='utf-8') as f:
                    self._index = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to initialize file storage: {e}") from e

        if self.download_resources and self.session is None:
            headers = {'User-Agent': self.user_agent} if self.user_agent else None
            self.session = aiohttp.ClientSession(
                timeout=ClientTimeout(total=self.resource_timeout),
                headers=headers
            )
        self.logger.info(f"File storage initialized at {self.output_directory}")

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None
        self.logger.debug(f"File storage stats: {self.stats}")

    def page_path(self, url: str) -> Path:
        """Deterministic location of the mirrored page for URL."""
        parsed = urlparse(url)
        host = parsed.hostname or 'unknown'

        parts = unquote(parsed.path).split('/')
        parts[-1] = shorten_file_name(parts[-1])
        pathname = '/'.join(parts)

        directory = self.output_directory / host / self._safe_relative(posixpath.dirname(pathname))

        file_name = f"{url_digest(url)}_{posixpath.basename(pathname) or 'index.html'}"
        if not os.path.splitext(file_name)[1]:
            file_name += '.html'
        return directory / file_name

    def partial_path(self, url: str) -> Path:
        host = urlparse(url).hostname or 'unknown'
        return self.output_directory / host / 'partial' / f"{url_digest(url)}_partial.html"

    def interactive_elements_path(self, url: str) -> Path:
        host = urlparse(url).hostname or 'unknown'
        return (self.output_directory / host / 'interactive_elements'
                / f"{url_digest(url)}_interactive_elements.json")

    async def save(self, url: str, content: str, resources: Sequence[str]) -> StoredDocument:
        """Write the page with absolute links and download its resources."""
        file_path = self.page_path(url)
        try:
            document = absolutize_document(content, url)
            self._write_text(file_path, document)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Error saving {url}: {e}") from e

        self.logger.info(f"Saved: {url} to {file_path}")
        self.stats['pages_saved'] += 1

        resources_saved = 0
        if self.download_resources and self.session and resources:
            resources_saved = await self._save_resources(resources, file_path.parent)

        stored = StoredDocument(
            url=url,
            path=str(file_path),
            content_hash=hashlib.sha256(content.encode('utf-8')).hexdigest(),
            resources_saved=resources_saved
        )
        self._update_index(stored)
        return stored

    async def save_partial(self, url: str, content: str) -> StoredDocument:
        """Write whatever content was captured before a failure."""
        file_path = self.partial_path(url)
        try:
            self._write_text(file_path, content)
        except OSError as e:
            raise PersistenceError(f"Error saving partial content for {url}: {e}") from e

        self.logger.info(f"Saved partial content: {url} to {file_path}")
        self.stats['partial_pages_saved'] += 1

        stored = StoredDocument(
            url=url,
            path=str(file_path),
            content_hash=hashlib.sha256(content.encode('utf-8')).hexdigest(),
            partial=True
        )
        self._update_index(stored)
        return stored

    async def save_interactive_elements(self, url: str,
                                        elements: Sequence[InteractiveElement]) -> Optional[Path]:
        file_path = self.interactive_elements_path(url)
        try:
            payload = json.dumps([element.to_dict() for element in elements],
                                 ensure_ascii=False, indent=2)
            self._write_text(file_path, payload)
        except OSError as e:
            raise PersistenceError(f"Error saving interactive elements for {url}: {e}") from e

        self.logger.info(f"Saved interactive elements for {url} to {file_path}")
        return file_path

    async def _save_resources(self, resources: Sequence[str], directory: Path) -> int:
        unique = []
        for resource in resources:
            if resource not in unique and is_crawlable_url(resource):
                unique.append(resource)

        results = await asyncio.gather(
            *(self._save_resource(resource, directory) for resource in unique)
        )
        return sum(1 for saved in results if saved)

    async def _save_resource(self, resource_url: str, directory: Path) -> bool:
        """Download one resource. Errors are logged and never fail the page."""
        base_name = posixpath.basename(unquote(urlparse(resource_url).path)) or 'resource'
        file_path = directory / shorten_file_name(f"{url_digest(resource_url)}_{base_name}")

        async with self.semaphore:
            try:
                async with self.session.get(resource_url) as response:
                    response.raise_for_status()
                    body = await response.read()
                file_path.parent.mkdir(parents=True, exist_ok=True)
                with open(file_path, 'wb') as f:
                    f.write(body)
            except (ClientError, asyncio.TimeoutError, OSError) as e:
                self.stats['resource_errors'] += 1
                self.logger.error(f"Error saving resource {resource_url}: {e}")
                return False

        self.stats['resources_saved'] += 1
        self.logger.debug(f"Saved resource: {resource_url} to {file_path}")
        return True

    def _update_index(self, stored: StoredDocument):
        """Record URL -> path/content hash in the store index."""
        entry = asdict(stored)
        entry['stored_at'] = datetime.now(timezone.utc).isoformat()
        self._index[stored.url] = entry
        try:
            with open(self.index_file, 'w', encoding='utf-8') as f:
                json.dump(self._index, f, ensure_ascii=False, indent=2)
        except OSError as e:
            self.logger.warning(f"Error updating index: {e}")

    @staticmethod
    def _safe_relative(directory: str) -> Path:
        parts = [part for part in directory.split('/') if part not in ('', '.', '..')]
        return Path(*parts) if parts else Path()

    @staticmethod
    def _write_text(file_path: Path, text: str):
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            f.write(text)

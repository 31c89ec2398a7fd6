"""
Frontier of discovered-but-not-yet-processed URLs.
Breadth-first FIFO queue guarded by a visited set, with an optional Redis mirror.
"""

import hashlib
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional, Set

import redis.asyncio as redis

from .errors import FrontierError
from .parser import normalize_url


@dataclass
class FrontierEntry:
    """A (url, depth) pair waiting to be attempted."""
    url: str
    depth: int
    parent_url: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'depth': self.depth,
            'parent_url': self.parent_url,
            'discovered_time': self.discovered_time
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'FrontierEntry':
        """Create FrontierEntry from dictionary."""
        return cls(
            url=data['url'],
            depth=data['depth'],
            parent_url=data.get('parent_url'),
            discovered_time=data.get('discovered_time', time.time())
        )


class Frontier:
    """
    In-memory frontier.

    Visited marking happens when a URL is attempted, never on enqueue, so a
    URL discovered by two pages before either is processed is queued twice;
    the second copy is rejected when popped.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.queue: Deque[FrontierEntry] = deque()
        self.visited: Set[str] = set()

    async def initialize(self):
        """Load persisted state. Nothing to do for the in-memory frontier."""

    async def seed(self, url: str) -> FrontierEntry:
        """Insert the start URL at depth 0 unconditionally."""
        entry = FrontierEntry(url=normalize_url(url), depth=0)
        await self._push(entry)
        self.logger.debug(f"Seeded frontier with {entry.url}")
        return entry

    async def enqueue(self, url: str, depth: int, parent_url: Optional[str] = None) -> bool:
        """
        Add a URL unless it was already attempted.
        Returns True if the URL was queued.
        """
        normalized = normalize_url(url)
        if normalized in self.visited:
            return False

        await self._push(FrontierEntry(url=normalized, depth=depth, parent_url=parent_url))
        return True

    async def pop_next(self) -> Optional[FrontierEntry]:
        """Return the oldest entry, or None when the queue is empty."""
        if not self.queue:
            return None
        entry = self.queue.popleft()
        await self._persist_pop(entry)
        return entry

    async def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self.visited

    async def mark_visited(self, url: str):
        """Record an attempt. The visited set never shrinks."""
        normalized = normalize_url(url)
        if normalized in self.visited:
            return
        self.visited.add(normalized)
        await self._persist_visited(normalized)

    async def is_empty(self) -> bool:
        return not self.queue

    def __len__(self) -> int:
        return len(self.queue)

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self.queue),
            'total_visited': len(self.visited)
        }

    async def clear(self):
        """Forget queued and visited URLs."""
        self.queue.clear()
        self.visited.clear()

    async def close(self):
        """Release backing resources."""

    async def _push(self, entry: FrontierEntry):
        self.queue.append(entry)

    async def _persist_pop(self, entry: FrontierEntry):
        pass

    async def _persist_visited(self, url: str):
        pass


class RedisFrontier(Frontier):
    """
    Frontier mirrored into Redis so an interrupted crawl can be resumed.
    The in-memory queue and set stay authoritative; Redis write errors are logged.
    """

    def __init__(self, redis_client: redis.Redis, seed_url: str,
                 key_prefix: str = "sitemirror"):
        super().__init__()
        self.redis_client = redis_client

        # One namespace per seed so separate sites never share state
        seed_hash = hashlib.sha256(normalize_url(seed_url).encode('utf-8')).hexdigest()[:16]
        self.queue_key = f"{key_prefix}:{seed_hash}:queue"
        self.visited_key = f"{key_prefix}:{seed_hash}:visited"

    async def initialize(self):
        """Load queue and visited set from a previous run."""
        try:
            visited = await self.redis_client.smembers(self.visited_key)
            self.visited = {self._decode(url) for url in visited}

            queue_data = await self.redis_client.lrange(self.queue_key, 0, -1)
            for item in queue_data:
                self.queue.append(FrontierEntry.from_dict(json.loads(self._decode(item))))

            self.logger.info(f"Loaded frontier with {len(self.queue)} queued and "
                             f"{len(self.visited)} visited URLs")

        except Exception as e:
            raise FrontierError(f"Failed to load frontier from Redis: {e}") from e

    async def clear(self):
        """Delete the persisted state for this seed."""
        await super().clear()
        try:
            await self.redis_client.delete(self.queue_key, self.visited_key)
        except Exception as e:
            self.logger.error(f"Error clearing frontier keys: {e}")

    async def close(self):
        await self.redis_client.close()

    async def _push(self, entry: FrontierEntry):
        await super()._push(entry)
        try:
            await self.redis_client.rpush(self.queue_key, json.dumps(entry.to_dict()))
        except Exception as e:
            self.logger.error(f"Error adding URL to Redis: {e}")

    async def _persist_pop(self, entry: FrontierEntry):
        try:
            await self.redis_client.lpop(self.queue_key)
        except Exception as e:
            self.logger.error(f"Error removing URL from Redis: {e}")

    async def _persist_visited(self, url: str):
        try:
            await self.redis_client.sadd(self.visited_key, url)
        except Exception as e:
            self.logger.error(f"Error marking URL as visited in Redis: {e}")

    @staticmethod
    def _decode(value) -> str:
        return value.decode('utf-8') if isinstance(value, bytes) else value

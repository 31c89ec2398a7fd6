"""
Tests for the frontier and its Redis mirror.
"""

import json

import pytest

from sitemirror.crawler.errors import FrontierError
from sitemirror.crawler.frontier import Frontier, FrontierEntry, RedisFrontier
from tests.conftest import FakeRedis


class BrokenRedis(FakeRedis):
    async def smembers(self, key):
        raise ConnectionError("redis down")


# ---------------------------------------------------------------------------
# In-memory frontier
# ---------------------------------------------------------------------------

class TestFrontier:

    async def test_fifo_order(self):
        frontier = Frontier()
        await frontier.seed('https://x.test/')
        await frontier.enqueue('https://x.test/b', 1)
        await frontier.enqueue('https://x.test/c', 1)

        popped = [(await frontier.pop_next()).url for _ in range(3)]

        assert popped == ['https://x.test/', 'https://x.test/b', 'https://x.test/c']
        assert await frontier.pop_next() is None
        assert await frontier.is_empty()

    async def test_seed_does_not_mark_visited(self):
        frontier = Frontier()
        entry = await frontier.seed('https://x.test/')

        assert entry.depth == 0
        assert not await frontier.is_visited('https://x.test/')

    async def test_seed_is_unconditional(self):
        frontier = Frontier()
        await frontier.mark_visited('https://x.test/')
        await frontier.seed('https://x.test/')

        assert len(frontier) == 1

    async def test_enqueue_rejects_visited(self):
        frontier = Frontier()
        await frontier.mark_visited('https://x.test/a')

        assert await frontier.enqueue('https://x.test/a', 1) is False
        assert len(frontier) == 0

    async def test_enqueue_allows_duplicates_until_attempted(self):
        frontier = Frontier()
        assert await frontier.enqueue('https://x.test/a', 1)
        assert await frontier.enqueue('https://x.test/a', 2)

        assert len(frontier) == 2

    async def test_urls_are_normalized(self):
        frontier = Frontier()
        await frontier.mark_visited('HTTPS://X.test/a#section')

        assert await frontier.is_visited('https://x.test/a')
        assert await frontier.enqueue('https://x.test/a#other', 1) is False

    async def test_visited_set_only_grows(self):
        frontier = Frontier()
        await frontier.mark_visited('https://x.test/a')
        await frontier.mark_visited('https://x.test/a')

        assert frontier.get_stats() == {'total_queued': 0, 'total_visited': 1}

    async def test_enqueue_records_parent(self):
        frontier = Frontier()
        await frontier.enqueue('https://x.test/a', 1, parent_url='https://x.test/')

        entry = await frontier.pop_next()
        assert entry.parent_url == 'https://x.test/'
        assert entry.depth == 1

    async def test_clear_forgets_queue_and_visited(self):
        frontier = Frontier()
        await frontier.enqueue('https://x.test/a', 1)
        await frontier.mark_visited('https://x.test/b')

        await frontier.clear()

        assert await frontier.is_empty()
        assert not await frontier.is_visited('https://x.test/b')


def test_entry_round_trip():
    entry = FrontierEntry(url='https://x.test/a', depth=2, parent_url='https://x.test/')

    restored = FrontierEntry.from_dict(entry.to_dict())

    assert restored == entry


# ---------------------------------------------------------------------------
# Redis mirror
# ---------------------------------------------------------------------------

class TestRedisFrontier:

    async def test_mirrors_queue_and_visited(self):
        client = FakeRedis()
        frontier = RedisFrontier(client, 'https://x.test/')

        await frontier.seed('https://x.test/')
        await frontier.enqueue('https://x.test/a', 1)
        await frontier.pop_next()
        await frontier.mark_visited('https://x.test/')

        queued = [json.loads(item) for item in client.lists[frontier.queue_key]]
        assert [item['url'] for item in queued] == ['https://x.test/a']
        assert client.sets[frontier.visited_key] == {b'https://x.test/'}

    async def test_initialize_restores_previous_run(self):
        client = FakeRedis()
        first = RedisFrontier(client, 'https://x.test/')
        await first.seed('https://x.test/')
        await first.pop_next()
        await first.mark_visited('https://x.test/')
        await first.enqueue('https://x.test/a', 1)

        resumed = RedisFrontier(client, 'https://x.test/')
        await resumed.initialize()

        assert await resumed.is_visited('https://x.test/')
        entry = await resumed.pop_next()
        assert (entry.url, entry.depth) == ('https://x.test/a', 1)

    async def test_namespaces_are_per_seed(self):
        client = FakeRedis()
        one = RedisFrontier(client, 'https://one.test/')
        two = RedisFrontier(client, 'https://two.test/')

        assert one.queue_key != two.queue_key
        assert one.visited_key.startswith('sitemirror:')

    async def test_write_errors_keep_memory_state(self):
        client = FakeRedis()
        client.fail_writes = True
        frontier = RedisFrontier(client, 'https://x.test/')

        await frontier.enqueue('https://x.test/a', 1)
        await frontier.mark_visited('https://x.test/b')

        assert len(frontier) == 1
        assert await frontier.is_visited('https://x.test/b')

    async def test_initialize_failure_raises(self):
        frontier = RedisFrontier(BrokenRedis(), 'https://x.test/')

        with pytest.raises(FrontierError):
            await frontier.initialize()

    async def test_clear_and_close(self):
        client = FakeRedis()
        frontier = RedisFrontier(client, 'https://x.test/')
        await frontier.seed('https://x.test/')

        await frontier.clear()
        await frontier.close()

        assert len(frontier) == 0
        assert frontier.queue_key not in client.lists
        assert client.closed

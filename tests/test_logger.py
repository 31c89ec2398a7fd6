"""
Tests for logging utilities.
"""

import json
import logging

from sitemirror.utils.config import LoggingConfig
from sitemirror.utils.logger import (
    CrawlerLogAdapter, JSONFormatter, NoiseFilter, get_crawler_logger, setup_logging
)


def make_record(name='sitemirror.test', msg='hello', **attrs):
    record = logging.LogRecord(name, logging.INFO, __file__, 10, msg, None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    record = make_record(extra_fields={'url': 'https://x.test/', 'worker': 2})

    entry = json.loads(JSONFormatter().format(record))

    assert entry['message'] == 'hello'
    assert entry['level'] == 'INFO'
    assert entry['url'] == 'https://x.test/'
    assert entry['worker'] == 2


def test_adapter_merges_context_and_per_call_fields():
    adapter = get_crawler_logger('sitemirror.test', seed_url='https://x.test/')

    msg, kwargs = adapter.process('m', {'extra': {'extra_fields': {'depth': 1}}})

    assert isinstance(adapter, CrawlerLogAdapter)
    assert kwargs['extra']['extra_fields'] == {'seed_url': 'https://x.test/', 'depth': 1}


def test_log_url_event_tags_record(caplog):
    adapter = get_crawler_logger('sitemirror.test', worker=0)

    with caplog.at_level(logging.INFO, logger='sitemirror.test'):
        adapter.log_url_event(logging.INFO, 'https://x.test/a', 'Crawled page')

    record = caplog.records[-1]
    assert record.extra_fields['url'] == 'https://x.test/a'
    assert record.extra_fields['event_type'] == 'url_event'
    assert record.extra_fields['worker'] == 0


def test_noise_filter_drops_third_party_records():
    noise = NoiseFilter()

    assert noise.filter(make_record(name='aiohttp.access')) is False
    assert noise.filter(make_record(name='sitemirror.crawler')) is True


def test_setup_logging_creates_log_files(tmp_path, restore_root_logger):
    config = LoggingConfig(level='DEBUG', file=str(tmp_path / 'logs' / 'crawler.log'), json=True)

    root = setup_logging(config)
    logging.getLogger('sitemirror.test').error('disk on fire')
    for handler in root.handlers:
        handler.flush()

    assert root.level == logging.DEBUG
    assert (tmp_path / 'logs' / 'crawler.log').exists()
    errors = (tmp_path / 'logs' / 'errors.log').read_text(encoding='utf-8').splitlines()
    assert json.loads(errors[-1])['message'] == 'disk on fire'

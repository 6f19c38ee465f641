"""Unit tests for RedirectResolver, ClickRecorder and redirect_headers()

Test coverage includes:

1. Resolution through the cache and the store
   - Round trip, positive cache hits skip the store.
   - Unknown codes are negatively cached without further store I/O.
   - Malformed codes never reach the store.
2. Expired vs not found vs disabled
3. Store outages surface as DataStoreError and are never cached
4. Redirect headers per status
5. Click accounting (synchronous and through ClickRecorder)
"""

import threading
from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from linkguard.abuse.monitoring import MonitoringCore
from linkguard.dao.base import LinkBaseDAO
from linkguard.dao.cache import LocalLinkCache
from linkguard.dao.exceptions import DataStoreError, LinkNotFoundError
from linkguard.exceptions import LinkExpiredError
from linkguard.models import RedirectRecord, RedirectStatus
from linkguard.services import ClickRecorder, RedirectResolver, redirect_headers
from linkguard.utils.helpers import now_ms


@pytest.fixture
def cache() -> LocalLinkCache:
    return LocalLinkCache(capacity=100, ttl=30, negative_ttl=2)


@pytest.fixture
def resolver(dao, cache) -> RedirectResolver:
    return RedirectResolver(dao, cache)


# -------------------------------
# 1. Cache and store
# -------------------------------


def test_resolve_round_trip(dao, resolver):
    dao.insert('abc123', RedirectRecord(url='https://example.com/article'))

    assert resolver.resolve('abc123').url == 'https://example.com/article'
    assert resolver.resolve('abc123').url == 'https://example.com/article'
    assert dao.gets == 1


def test_positive_entry_expires(dao, resolver):
    with freeze_time('2025-10-15T00:00:00Z') as frozen:
        dao.insert('abc123', RedirectRecord(url='https://example.com'))
        resolver.resolve('abc123')

        frozen.tick(30)
        resolver.resolve('abc123')

    assert dao.gets == 2


def test_unknown_code_is_negatively_cached(dao, cache, resolver):
    with freeze_time('2025-10-15T00:00:00Z') as frozen:
        with pytest.raises(LinkNotFoundError):
            resolver.resolve('nope')
        with pytest.raises(LinkNotFoundError):
            resolver.resolve('nope')
        assert dao.gets == 1
        assert cache.get('nope').missing

        frozen.tick(2)
        with pytest.raises(LinkNotFoundError):
            resolver.resolve('nope')
        assert dao.gets == 2


def test_invalidated_negative_entry_sees_new_link(dao, cache, resolver):
    with pytest.raises(LinkNotFoundError):
        resolver.resolve('fresh')

    dao.insert('fresh', RedirectRecord(url='https://example.com'))
    cache.invalidate('fresh')

    assert resolver.resolve('fresh').url == 'https://example.com'


@pytest.mark.parametrize('shortcode', ['', None, 'has space', 'abc/def', 'abc?x=1', '../etc', 'abc123\n'])
def test_malformed_shortcode_never_reaches_store(dao, cache, resolver, shortcode):
    with pytest.raises(LinkNotFoundError):
        resolver.resolve(shortcode)

    assert dao.gets == 0
    assert len(cache) == 0


def test_concurrent_resolution(dao, resolver):
    dao.insert('abc123', RedirectRecord(url='https://example.com'))
    results = []

    def worker():
        for _ in range(100):
            results.append(resolver.resolve('abc123').url)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == ['https://example.com'] * 800


# -------------------------------
# 2. Expired, not found, disabled
# -------------------------------


def test_expired_is_distinct_from_missing(dao, resolver):
    with freeze_time('2025-10-15T00:00:00Z') as frozen:
        dao.insert('abc123', RedirectRecord(url='https://example.com', expires_at_ms=now_ms() + 60_000))
        assert resolver.resolve('abc123').url == 'https://example.com'

        frozen.tick(61)
        with pytest.raises(LinkExpiredError) as exc_info:
            resolver.resolve('abc123')
        assert exc_info.value.status_code == 410

        with pytest.raises(LinkNotFoundError) as exc_info:
            resolver.resolve('other')
        assert exc_info.value.status_code == 404


def test_disabled_record_is_not_found(dao, resolver):
    dao.insert('abc123', RedirectRecord(url='https://example.com', enabled=False))

    with pytest.raises(LinkNotFoundError):
        resolver.resolve('abc123')


# -------------------------------
# 3. Store outages
# -------------------------------


def test_store_outage(cache):
    dao = MagicMock(spec=LinkBaseDAO)
    dao.get.side_effect = DataStoreError("Can't connect to Redis at redis.test:6379/0.")
    resolver = RedirectResolver(dao, cache)

    with pytest.raises(DataStoreError) as exc_info:
        resolver.resolve('abc123')

    assert exc_info.value.status_code == 503
    assert len(cache) == 0


def test_cached_record_survives_store_outage(cache):
    dao = MagicMock(spec=LinkBaseDAO)
    dao.get.return_value = RedirectRecord(url='https://example.com')
    resolver = RedirectResolver(dao, cache)
    resolver.resolve('abc123')

    dao.get.side_effect = DataStoreError('Redis down.')
    assert resolver.resolve('abc123').url == 'https://example.com'


# -------------------------------
# 4. Redirect headers
# -------------------------------


@pytest.mark.parametrize(
    'status, cache_control',
    [
        (RedirectStatus.PERMANENT_REDIRECT, 'public, max-age=3600'),
        (RedirectStatus.MOVED_PERMANENTLY, 'public, max-age=3600'),
        (RedirectStatus.FOUND, 'no-store'),
    ],
)
def test_redirect_headers(status, cache_control):
    headers = redirect_headers(RedirectRecord(url='https://example.com/a?b=c', redirect_status=status))
    assert headers == {'Location': 'https://example.com/a?b=c', 'Cache-Control': cache_control}


# -------------------------------
# 5. Click accounting
# -------------------------------


def test_record_hit_synchronous(dao, cache):
    monitor = MagicMock(spec=MonitoringCore)
    monitor.click_anomaly.return_value = False
    resolver = RedirectResolver(dao, cache, monitor=monitor)

    resolver.record_hit('abc123')

    assert dao.clicks['abc123'] == 1
    monitor.record_redirect.assert_called_once_with('abc123')
    monitor.click_anomaly.assert_called_once_with('abc123')


def test_record_hit_logs_anomaly(dao, cache, caplog):
    monitor = MagicMock(spec=MonitoringCore)
    monitor.click_anomaly.return_value = True

    RedirectResolver(dao, cache, monitor=monitor).record_hit('abc123')

    assert any(getattr(record, 'event', None) == 'CLICK_ANOMALY' for record in caplog.records)


def test_record_hit_swallows_counter_failure(cache):
    dao = MagicMock(spec=LinkBaseDAO)
    dao.hit.side_effect = DataStoreError('Redis down.')

    RedirectResolver(dao, cache).record_hit('abc123')

    dao.hit.assert_called_once_with('abc123')


def test_click_recorder(dao, cache):
    clicks = ClickRecorder(max_workers=2)
    resolver = RedirectResolver(dao, cache, clicks=clicks)

    resolver.record_hit('abc123')
    resolver.record_hit('abc123')
    clicks.shutdown(wait=True)

    assert dao.clicks['abc123'] == 2


def test_click_recorder_failure_is_logged(caplog):
    dao = MagicMock(spec=LinkBaseDAO)
    dao.hit.side_effect = DataStoreError('Redis down.')
    clicks = ClickRecorder(max_workers=1)

    future = clicks.record(dao, 'abc123')
    clicks.shutdown(wait=True)

    assert isinstance(future.exception(), DataStoreError)
    assert any(getattr(record, 'event', None) == 'CLICK_INCREMENT_FAILED' for record in caplog.records)

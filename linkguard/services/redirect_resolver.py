"""Redirect hot path: shortcode -> redirect record

Lookup chain:
    1. In-process cache (LocalLinkCache). A positive hit returns immediately, a
       negative hit answers "not found" without any I/O.
    2. One GET against Redis.
    3. Store miss -> negative cache entry (short TTL) -> LinkNotFoundError.
    4. Store hit -> positive cache entry, then `enabled` and expiry checks.

A Redis outage surfaces as DataStoreError (503). It is never turned into a 404,
so infrastructure failures stay distinguishable from normal "not found" traffic.

Click accounting is fire-and-forget: ClickRecorder increments the Redis counter
on a small thread pool and the redirect response never waits for it. Counting is
best-effort and at-least-once; increments still queued when the container is
frozen or recycled may be lost.
"""

import re
import logging
from concurrent.futures import Future, ThreadPoolExecutor

from linkguard.dao.base import LinkBaseDAO
from linkguard.dao.cache import LocalLinkCache
from linkguard.dao.exceptions import DAOError, LinkNotFoundError
from linkguard.exceptions import LinkExpiredError
from linkguard.models import RedirectRecord
from linkguard.types import Headers
from linkguard.utils.helpers import now_ms


logger = logging.getLogger(__name__)


SHORTCODE_PATTERN = re.compile(r'[a-zA-Z0-9_-]+')
PERMANENT_CACHE_CONTROL = 'public, max-age=3600'
TRACKED_CACHE_CONTROL = 'no-store'


def is_valid_shortcode(shortcode: str | None) -> bool:
    return bool(shortcode) and SHORTCODE_PATTERN.fullmatch(shortcode) is not None


def redirect_headers(record: RedirectRecord) -> Headers:
    """Location and caching directives for a redirect

    301/308 may be cached publicly; 302 is used when every click must reach us,
    so intermediaries are told not to store it.
    """
    cache_control = PERMANENT_CACHE_CONTROL if record.redirect_status.cacheable else TRACKED_CACHE_CONTROL
    return {'Location': record.url, 'Cache-Control': cache_control}


class ClickRecorder:
    """Dispatch click counter increments off the request thread

    Args:
        max_workers (int):
            Size of the increment thread pool.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='click-recorder')

    def record(self, dao: LinkBaseDAO, shortcode: str) -> Future:
        future = self._executor.submit(dao.hit, shortcode)
        future.add_done_callback(lambda f: self._log_failure(shortcode, f))
        return future

    @staticmethod
    def _log_failure(shortcode: str, future: Future) -> None:
        error = future.exception()
        if error is not None:
            logger.warning(
                'Failed to increment click counter.',
                extra={'event': 'CLICK_INCREMENT_FAILED', 'shortcode': shortcode, 'error': error.__class__.__name__},
            )

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class RedirectResolver:
    """Resolve shortcodes through the in-process cache and Redis

    Args:
        dao (LinkBaseDAO):
            Persistent store (source of truth).
        cache (LocalLinkCache):
            In-process cache, always subordinate to the store.
        monitor (MonitoringCore | None):
            Receives every served redirect.
        clicks (ClickRecorder | None):
            Asynchronous click counter.
    """

    def __init__(self, dao: LinkBaseDAO, cache: LocalLinkCache, monitor=None, clicks: ClickRecorder | None = None):
        self.dao = dao
        self.cache = cache
        self.monitor = monitor
        self.clicks = clicks

    def resolve(self, shortcode: str) -> RedirectRecord:
        """Resolve a shortcode to a servable redirect record

        Raises:
            LinkNotFoundError:
                If the shortcode is malformed, unknown or disabled.
            LinkExpiredError:
                If the record exists but expired.
            DataStoreError:
                If Redis is unreachable or the stored record is corrupt.
        """
        if not is_valid_shortcode(shortcode):
            raise LinkNotFoundError(f"Short URL with code '{shortcode}' not found.")

        entry = self.cache.get(shortcode)
        if entry is not None and entry.missing:
            raise LinkNotFoundError(f"Short URL with code '{shortcode}' not found.")

        if entry is not None:
            record = entry.record
        else:
            try:
                record = self.dao.get(shortcode)
            except LinkNotFoundError:
                self.cache.put_missing(shortcode)
                raise
            self.cache.put(shortcode, record)

        if not record.enabled:
            raise LinkNotFoundError(f"Short URL with code '{shortcode}' not found.")
        if record.is_expired(now_ms()):
            raise LinkExpiredError(f"Short URL with code '{shortcode}' has expired.")
        return record

    def record_hit(self, shortcode: str) -> None:
        """Account one served redirect without blocking the response"""
        if self.monitor is not None:
            self.monitor.record_redirect(shortcode)
            if self.monitor.click_anomaly(shortcode):
                logger.warning(
                    'Click anomaly detected on short link.',
                    extra={'event': 'CLICK_ANOMALY', 'shortcode': shortcode},
                )

        if self.clicks is not None:
            self.clicks.record(self.dao, shortcode)
        else:
            try:
                self.dao.hit(shortcode)
            except DAOError:
                logger.warning(
                    'Failed to increment click counter.',
                    extra={'event': 'CLICK_INCREMENT_FAILED', 'shortcode': shortcode},
                )

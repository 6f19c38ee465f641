"""Process-wide abuse-control state

A warm Lambda container serves many invocations; the rate limiter, monitoring
counters, redirect cache and click recorder must outlive a single invocation to
be of any use. `get_runtime()` builds them once per process and starts the
background sweeper that keeps their memory bounded.

NOTE: state is per container. Concurrent containers don't share counters, so
      effective limits scale with the number of warm containers.

Example:
    >>> runtime = get_runtime(AbuseSettings.from_config(app_config['abuse']))
    >>> runtime.monitor.is_kill_switch_active()
    False
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from linkguard.abuse.monitoring import MonitoringCore
from linkguard.abuse.proxy_detector import ProxyDetector
from linkguard.abuse.rate_limiter import RateLimiter
from linkguard.abuse.url_safety import UrlSafetyScanner
from linkguard.abuse.verification import CaptchaVerifier, SafeBrowsingClient
from linkguard.dao.base import LinkBaseDAO
from linkguard.dao.cache import LocalLinkCache
from linkguard.services.link_creator import LinkCreator
from linkguard.services.redirect_resolver import ClickRecorder, RedirectResolver
from linkguard.utils.concurrency import ShardedLock
from linkguard.utils.settings import AbuseSettings


logger = logging.getLogger(__name__)


class Sweeper(threading.Thread):
    """Daemon thread running maintenance callables on a fixed interval"""

    def __init__(self, interval: float, tasks: Iterable[Callable[[], int]]):
        super().__init__(name='linkguard-sweeper', daemon=True)
        self.interval = interval
        self.tasks = list(tasks)
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.sweep_once()

    def sweep_once(self) -> int:
        removed = 0
        for task in self.tasks:
            try:
                removed += task()
            except Exception:
                # The sweeper must outlive a failing task; the next tick retries it
                logger.exception('Sweep task failed.', extra={'event': 'SWEEP_FAILED', 'task': getattr(task, '__qualname__', repr(task))})
        return removed

    def stop(self) -> None:
        self._stop_event.set()


@dataclass
class Runtime:
    settings: AbuseSettings
    monitor: MonitoringCore
    rate_limiter: RateLimiter
    scanner: UrlSafetyScanner
    proxy_detector: ProxyDetector
    cache: LocalLinkCache
    clicks: ClickRecorder
    sweeper: Sweeper

    @classmethod
    def build(cls, settings: AbuseSettings) -> 'Runtime':
        locks = ShardedLock()
        monitor = MonitoringCore(settings, locks=locks)
        rate_limiter = RateLimiter(settings, locks=locks)
        cache = LocalLinkCache(
            capacity=settings.cache_capacity,
            ttl=settings.cache_ttl_seconds,
            negative_ttl=settings.negative_cache_ttl_seconds,
        )
        sweeper = Sweeper(settings.sweep_interval_seconds, (rate_limiter.sweep, monitor.sweep, cache.sweep))
        return cls(
            settings=settings,
            monitor=monitor,
            rate_limiter=rate_limiter,
            scanner=UrlSafetyScanner(monitor, min_trust_score=settings.min_trust_score),
            proxy_detector=ProxyDetector(),
            cache=cache,
            clicks=ClickRecorder(),
            sweeper=sweeper,
        )

    def resolver(self, dao: LinkBaseDAO) -> RedirectResolver:
        return RedirectResolver(dao, self.cache, monitor=self.monitor, clicks=self.clicks)

    def creator(self, dao: LinkBaseDAO) -> LinkCreator:
        return LinkCreator(
            dao,
            self.cache,
            self.monitor,
            self.rate_limiter,
            scanner=self.scanner,
            proxy_detector=self.proxy_detector,
            safe_browsing=SafeBrowsingClient.from_environment(timeout=self.settings.external_timeout_seconds),
            captcha=CaptchaVerifier.from_environment(
                score_threshold=self.settings.captcha_score_threshold,
                timeout=self.settings.external_timeout_seconds,
            ),
            settings=self.settings,
        )

    def close(self) -> None:
        self.sweeper.stop()
        self.clicks.shutdown(wait=True)


_runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime(settings: AbuseSettings | None = None) -> Runtime:
    """Return the process runtime, building it (and starting its sweeper) on first use

    Settings only take effect when the runtime is built; later calls with
    different settings keep the running state and log the mismatch.
    """
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime.build(settings or AbuseSettings())
            _runtime.sweeper.start()
            logger.debug('Initialized process runtime.', extra={'event': 'RUNTIME_INITIALIZED'})
        elif settings is not None and settings != _runtime.settings:
            logger.info(
                'Abuse settings changed; keeping the running state until the container is recycled.',
                extra={'event': 'RUNTIME_SETTINGS_CHANGED'},
            )
        return _runtime


def reset_runtime() -> None:
    """Tear down the process runtime (used by tests)"""
    global _runtime
    with _runtime_lock:
        if _runtime is not None:
            _runtime.close()
        _runtime = None

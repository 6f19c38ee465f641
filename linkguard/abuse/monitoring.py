"""Real-time abuse monitoring and the link creation kill switch

MonitoringCore is a process-wide singleton fed by the request path:
    - record_creation(code, url, ip)   after a link is stored
    - record_redirect(code)            on every served redirect
    - record_flagged(url, reason)      on every rejected destination URL

Kill switch:
    INACTIVE -> (>= threshold flagged links within the window) -> ACTIVE
    ACTIVE   -> (cooldown elapsed since activation, checked lazily) -> INACTIVE

Anomaly detectors (click bursts on one link, creation spikes from one IP) are
advisory: callers log them, nothing is blocked automatically.

Every structure is bounded. Flagged links live in a ring buffer, per-link and
per-IP timestamp maps evict their oldest key when full, and sweep() prunes
timestamps older than an hour and trims the domain map.
"""

import math
import time
import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

from linkguard.constants import TTL
from linkguard.utils.concurrency import KeyedTable, ShardedLock
from linkguard.utils.helpers import iso_from_ms
from linkguard.utils.settings import AbuseSettings


logger = logging.getLogger(__name__)


TOP_DOMAINS_LIMIT = 20
TOP_REDIRECTS_LIMIT = 20
RECENT_FLAGGED_LIMIT = 50
DASHBOARD_CLICK_WINDOW = 5 * TTL.ONE_MINUTE
# Domain map is trimmed to its most frequent DOMAINS_KEEP entries once it grows past DOMAINS_MAX
DOMAINS_MAX = 10_000
DOMAINS_KEEP = 5_000


def _iso(epoch_seconds: float) -> str | None:
    return iso_from_ms(int(epoch_seconds * 1000))


def _prune(timestamps: deque[float], now: float, horizon: float) -> None:
    while timestamps and now - timestamps[0] >= horizon:
        timestamps.popleft()


def _count_within(timestamps: deque[float], now: float, window: float) -> int:
    # Timestamps are appended in order, so walk back from the newest one
    count = 0
    for ts in reversed(timestamps):
        if now - ts >= window:
            break
        count += 1
    return count


@dataclass(frozen=True)
class FlaggedLink:
    url: str
    reason: str
    timestamp: float = field(default_factory=lambda: time.time())

    def to_dict(self) -> dict[str, Any]:
        return {'url': self.url, 'reason': self.reason, 'timestamp': _iso(self.timestamp)}


class MonitoringCore:
    """In-memory counters, anomaly detectors and the kill switch

    Args:
        settings (AbuseSettings | None):
            Kill switch, anomaly and capacity thresholds.
        locks (ShardedLock | None):
            Lock stripes guarding per-link and per-IP timestamps.
    """

    def __init__(self, settings: AbuseSettings | None = None, locks: ShardedLock | None = None):
        self.settings = settings or AbuseSettings()
        self.locks = locks or ShardedLock()

        self._creations_lock = threading.Lock()
        self._created_last_minute: deque[float] = deque()
        self._created_last_hour: deque[float] = deque()
        self._domains: Counter[str] = Counter()

        self._clicks: KeyedTable[deque[float]] = KeyedTable(deque, self.settings.max_tracked_links)
        self._ip_creations: KeyedTable[deque[float]] = KeyedTable(deque, self.settings.max_tracked_links)

        self._flagged_lock = threading.Lock()
        self._flagged: deque[FlaggedLink] = deque(maxlen=self.settings.flagged_history_size)

        self._kill_switch_lock = threading.Lock()
        self._malicious_window: deque[float] = deque()
        self._kill_switch_active = False
        self._kill_switch_activated_at = 0.0

    # -------------------------------
    # Recording
    # -------------------------------

    def record_creation(self, shortcode: str, url: str, ip: str) -> None:
        now = time.time()
        try:
            domain = (urlsplit(url).hostname or '').lower()
        except ValueError:
            domain = ''

        with self._creations_lock:
            self._created_last_minute.append(now)
            self._created_last_hour.append(now)
            if domain:
                self._domains[domain] += 1

        with self.locks.hold(('ip_creations', ip)):
            creations = self._ip_creations.get_or_create(ip)
            _prune(creations, now, TTL.ONE_HOUR)
            creations.append(now)

    def record_redirect(self, shortcode: str) -> None:
        now = time.time()
        with self.locks.hold(('clicks', shortcode)):
            clicks = self._clicks.get_or_create(shortcode)
            _prune(clicks, now, TTL.ONE_HOUR)
            clicks.append(now)

    def record_flagged(self, url: str, reason: str) -> None:
        flagged = FlaggedLink(url=url, reason=reason)
        with self._flagged_lock:
            self._flagged.append(flagged)

        with self._kill_switch_lock:
            self._malicious_window.append(flagged.timestamp)
            self._check_kill_switch(flagged.timestamp)

    # -------------------------------
    # Kill switch
    # -------------------------------

    def _check_kill_switch(self, now: float) -> None:
        # Caller holds the kill switch lock
        _prune(self._malicious_window, now, self.settings.killswitch_window_seconds)
        flagged_in_window = len(self._malicious_window)
        if flagged_in_window >= self.settings.killswitch_threshold and not self._kill_switch_active:
            self._kill_switch_active = True
            self._kill_switch_activated_at = now
            logger.warning(
                'Kill switch activated: link creation disabled.',
                extra={'event': 'KILL_SWITCH_ACTIVATED', 'flaggedInWindow': flagged_in_window, 'activatedAt': _iso(now)},
            )

    def is_kill_switch_active(self) -> bool:
        """Return whether link creation is disabled, deactivating once the cooldown elapsed"""
        with self._kill_switch_lock:
            if not self._kill_switch_active:
                return False

            now = time.time()
            if now - self._kill_switch_activated_at > self.settings.killswitch_cooldown_seconds:
                self._kill_switch_active = False
                self._kill_switch_activated_at = 0.0
                logger.info(
                    'Kill switch deactivated: cooldown expired.',
                    extra={'event': 'KILL_SWITCH_DEACTIVATED', 'deactivatedAt': _iso(now)},
                )
                return False
            return True

    def kill_switch_retry_after(self) -> int | None:
        """Seconds until the kill switch cooldown ends, or None when it's inactive"""
        with self._kill_switch_lock:
            if not self._kill_switch_active:
                return None
            remaining = self.settings.killswitch_cooldown_seconds - (time.time() - self._kill_switch_activated_at)
        return max(1, math.ceil(remaining))

    # -------------------------------
    # Anomaly detection
    # -------------------------------

    def click_anomaly(self, shortcode: str) -> bool:
        """True when a link received at least the anomaly threshold of clicks within its window"""
        with self.locks.hold(('clicks', shortcode)):
            clicks = self._clicks.get(shortcode)
            if not clicks:
                return False
            recent = _count_within(clicks, time.time(), self.settings.anomaly_clicks_window_seconds)
        return recent >= self.settings.anomaly_clicks_threshold

    def ip_creation_spike(self, ip: str) -> bool:
        """True when an IP created more than the spike threshold of links in the last minute"""
        with self.locks.hold(('ip_creations', ip)):
            creations = self._ip_creations.get(ip)
            if not creations:
                return False
            recent = _count_within(creations, time.time(), TTL.ONE_MINUTE)
        return recent > self.settings.ip_spike_threshold

    # -------------------------------
    # Dashboard and maintenance
    # -------------------------------

    def dashboard_snapshot(self) -> dict[str, Any]:
        """Build the monitoring dashboard payload

        Example:
            >>> monitor.dashboard_snapshot()
            {
                'linksCreatedLastMinute': 3,
                'linksCreatedLastHour': 41,
                'topDomains': [{'domain': 'example.com', 'count': 12}, ...],
                'topRedirects': [{'shortCode': 'abc123', 'clicksLast5Min': 7, 'totalTracked': 90}, ...],
                'recentFlaggedLinks': [{'url': ..., 'reason': 'nested_shortener', 'timestamp': ...}, ...],
                'killSwitch': {'active': False, 'activatedAt': None},
                'timestamp': '2025-10-15T12:00:00.000Z',
            }
        """
        now = time.time()

        with self._creations_lock:
            _prune(self._created_last_minute, now, TTL.ONE_MINUTE)
            _prune(self._created_last_hour, now, TTL.ONE_HOUR)
            created_last_minute = len(self._created_last_minute)
            created_last_hour = len(self._created_last_hour)
            top_domains = self._domains.most_common(TOP_DOMAINS_LIMIT)

        redirects = []
        for shortcode in self._clicks.keys():
            with self.locks.hold(('clicks', shortcode)):
                clicks = self._clicks.get(shortcode)
                if clicks is None:
                    continue
                redirects.append(
                    {
                        'shortCode': shortcode,
                        'clicksLast5Min': _count_within(clicks, now, DASHBOARD_CLICK_WINDOW),
                        'totalTracked': len(clicks),
                    }
                )
        redirects.sort(key=lambda entry: entry['clicksLast5Min'], reverse=True)

        with self._flagged_lock:
            recent_flagged = list(self._flagged)[-RECENT_FLAGGED_LIMIT:]
        recent_flagged.reverse()

        with self._kill_switch_lock:
            kill_switch = {
                'active': self._kill_switch_active,
                'activatedAt': _iso(self._kill_switch_activated_at) if self._kill_switch_active else None,
            }

        return {
            'linksCreatedLastMinute': created_last_minute,
            'linksCreatedLastHour': created_last_hour,
            'topDomains': [{'domain': domain, 'count': count} for domain, count in top_domains],
            'topRedirects': redirects[:TOP_REDIRECTS_LIMIT],
            'recentFlaggedLinks': [flagged.to_dict() for flagged in recent_flagged],
            'killSwitch': kill_switch,
            'timestamp': _iso(now),
        }

    def sweep(self) -> int:
        """Prune timestamps older than an hour and drop keys left empty

        Per-key state is pruned under its own shard lock, never under a table-wide lock.

        Returns:
            int: number of per-link and per-IP keys removed
        """
        removed = 0
        now = time.time()

        with self._creations_lock:
            _prune(self._created_last_minute, now, TTL.ONE_MINUTE)
            _prune(self._created_last_hour, now, TTL.ONE_HOUR)
            if len(self._domains) > DOMAINS_MAX:
                self._domains = Counter(dict(self._domains.most_common(DOMAINS_KEEP)))

        for kind, table in (('clicks', self._clicks), ('ip_creations', self._ip_creations)):
            for key in table.keys():
                with self.locks.hold((kind, key)):
                    timestamps = table.get(key)
                    if timestamps is None:
                        continue
                    _prune(timestamps, time.time(), TTL.ONE_HOUR)
                    if not timestamps:
                        table.discard(key, timestamps)
                        removed += 1

        with self._kill_switch_lock:
            _prune(self._malicious_window, time.time(), self.settings.killswitch_window_seconds)

        if removed:
            logger.debug('Swept monitoring state.', extra={'event': 'MONITORING_SWEEP', 'removed': removed})
        return removed

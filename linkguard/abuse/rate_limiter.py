"""Sliding-window rate limiting with progressive backoff

Per client key the limiter moves between three states:

    OPEN  ->  THROTTLED (cap hit, 429 with Retry-After)  ->  BACKOFF-BLOCKED

Admission for one request runs these gates in order:
    1. Active backoff block on the IP -> BackoffBlockedError
    2. Per-IP minute/hour windows, halved for suspicious user agents -> RateLimitedError
       (this also records a violation and may start a backoff block)
    3. Per-subnet minute/hour windows -> SubnetRateLimitedError
    4. Admitted: the timestamp is appended to the IP and subnet windows

The IP and subnet shard locks are held across the whole check-and-record, so two
concurrent requests from one client can never both slip under a cap.

Example:
    >>> limiter = RateLimiter(AbuseSettings(rate_ip_per_minute=2))
    >>> limiter.admit('203.0.113.7', 'Mozilla/5.0')
    False
    >>> limiter.admit('203.0.113.7', 'Mozilla/5.0')
    False
    >>> limiter.admit('203.0.113.7', 'Mozilla/5.0')
    RateLimitedError: Too many requests. Please try again later.
"""

import math
import re
import time
import logging
from collections import deque
from dataclasses import dataclass, field

from linkguard.constants import TTL
from linkguard.exceptions import BackoffBlockedError, RateLimitedError, SubnetRateLimitedError
from linkguard.utils.concurrency import KeyedTable, ShardedLock
from linkguard.utils.settings import AbuseSettings
from linkguard.abuse.client_identity import subnet_of


logger = logging.getLogger(__name__)


SUSPICIOUS_UA_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'curl',
        r'wget',
        r'python-requests',
        r'httpie',
        r'scrapy',
        r'bot(?!tle)',
        r'spider',
        r'crawl',
        r'headless',
        r'phantom',
        r'selenium',
        r'puppeteer',
    )
)


def is_suspicious_user_agent(user_agent: str | None) -> bool:
    """Empty user agents, HTTP client libraries, crawlers and headless browsers are suspicious"""
    if not user_agent:
        return True
    return any(pattern.search(user_agent) for pattern in SUSPICIOUS_UA_PATTERNS)


def backoff_seconds(violations: int, tiers: tuple[tuple[int, int], ...]) -> int:
    """Return the block duration of the highest tier met (0 below the first tier)

    Example:
        >>> backoff_seconds(7, DEFAULT_BACKOFF_TIERS)
        1800
    """
    duration = 0
    for threshold, seconds in tiers:
        if violations >= threshold:
            duration = seconds
    return duration


def _retry_after(seconds: float) -> int:
    return max(1, math.ceil(seconds))


@dataclass
class RateBucket:
    minute: deque[float] = field(default_factory=deque)
    hour: deque[float] = field(default_factory=deque)

    def prune(self, now: float) -> None:
        while self.minute and now - self.minute[0] >= TTL.ONE_MINUTE:
            self.minute.popleft()
        while self.hour and now - self.hour[0] >= TTL.ONE_HOUR:
            self.hour.popleft()

    def retry_after(self, now: float, per_minute: int, per_hour: int) -> float | None:
        """Seconds until this bucket admits again, or None if it admits now (call after prune)"""
        if len(self.minute) >= per_minute:
            if not self.minute:
                return float(TTL.ONE_MINUTE)
            return TTL.ONE_MINUTE - (now - self.minute[0])
        if len(self.hour) >= per_hour:
            if not self.hour:
                return float(TTL.ONE_HOUR)
            return TTL.ONE_HOUR - (now - self.hour[0])
        return None

    def record(self, now: float) -> None:
        self.minute.append(now)
        self.hour.append(now)

    @property
    def empty(self) -> bool:
        return not self.minute and not self.hour


@dataclass
class ViolationRecord:
    count: int = 0
    blocked_until: float = 0.0
    last_violation_at: float = 0.0

    def blocked(self, now: float) -> bool:
        return now < self.blocked_until


class RateLimiter:
    """Process-wide admission control for link creation

    Args:
        settings (AbuseSettings | None):
            Caps, UA throttle factor, backoff tiers and table capacity.
        locks (ShardedLock | None):
            Lock stripes guarding per-key state.
    """

    def __init__(self, settings: AbuseSettings | None = None, locks: ShardedLock | None = None):
        self.settings = settings or AbuseSettings()
        self.locks = locks or ShardedLock()
        capacity = self.settings.max_tracked_keys
        self.ip_buckets: KeyedTable[RateBucket] = KeyedTable(RateBucket, capacity)
        self.subnet_buckets: KeyedTable[RateBucket] = KeyedTable(RateBucket, capacity)
        self.violations: KeyedTable[ViolationRecord] = KeyedTable(ViolationRecord, capacity)

    def ip_caps(self, suspicious: bool) -> tuple[int, int]:
        factor = self.settings.ua_throttle_factor if suspicious else 1
        return (
            math.floor(self.settings.rate_ip_per_minute * factor),
            math.floor(self.settings.rate_ip_per_hour * factor),
        )

    def admit(self, ip: str, user_agent: str | None = '') -> bool:
        """Admit one creation request or raise the matching admission error

        Args:
            ip (str):
                Client IP address.
            user_agent (str | None):
                Client User-Agent header.

        Returns:
            bool: whether the user agent was considered suspicious

        Raises:
            BackoffBlockedError:
                If the IP is serving a backoff block.
            RateLimitedError:
                If the IP exceeded its minute or hour cap.
            SubnetRateLimitedError:
                If the IP's subnet exceeded its minute or hour cap.
        """
        subnet = subnet_of(ip)
        suspicious = is_suspicious_user_agent(user_agent)
        per_minute, per_hour = self.ip_caps(suspicious)

        with self.locks.hold(('ip', ip), ('subnet', subnet)):
            now = time.time()

            # 1- Progressive backoff
            violation = self.violations.get(ip)
            if violation is not None and violation.blocked(now):
                raise BackoffBlockedError(
                    'You have been temporarily blocked due to excessive requests. Please try again later.',
                    retry_after=_retry_after(violation.blocked_until - now),
                )

            # 2- Per-IP sliding window
            ip_bucket = self.ip_buckets.get_or_create(ip)
            ip_bucket.prune(now)
            wait = ip_bucket.retry_after(now, per_minute, per_hour)
            if wait is not None:
                self._record_violation(ip, now)
                raise RateLimitedError('Too many requests. Please try again later.', retry_after=_retry_after(wait))

            # 3- Per-subnet sliding window
            subnet_bucket = self.subnet_buckets.get_or_create(subnet)
            subnet_bucket.prune(now)
            wait = subnet_bucket.retry_after(now, self.settings.rate_subnet_per_minute, self.settings.rate_subnet_per_hour)
            if wait is not None:
                logger.warning(
                    'Subnet rate limit exceeded.',
                    extra={'event': 'SUBNET_RATE_LIMITED', 'clientIp': ip, 'subnet': subnet},
                )
                raise SubnetRateLimitedError(
                    'Too many requests from your network. Please try again later.',
                    retry_after=_retry_after(wait),
                )

            # 4- Admitted
            ip_bucket.record(now)
            subnet_bucket.record(now)

        return suspicious

    def _record_violation(self, ip: str, now: float) -> None:
        # Caller holds the IP shard lock
        record = self.violations.get_or_create(ip)
        record.count += 1
        record.last_violation_at = now

        block = backoff_seconds(record.count, self.settings.backoff_tiers)
        if block:
            record.blocked_until = max(record.blocked_until, now + block)
            logger.warning(
                'Client IP placed under backoff block.',
                extra={'event': 'BACKOFF_BLOCKED', 'clientIp': ip, 'violations': record.count, 'blockSeconds': block},
            )
        else:
            logger.info(
                'Client IP exceeded its rate limit.',
                extra={'event': 'RATE_LIMITED', 'clientIp': ip, 'violations': record.count},
            )

    def violation_count(self, ip: str) -> int:
        record = self.violations.get(ip)
        return record.count if record is not None else 0

    def sweep(self) -> int:
        """Drop empty buckets and violation records whose block lapsed over an hour ago

        Each key is handled under its own shard lock; no lock is held for the scan.

        Returns:
            int: number of entries removed
        """
        removed = 0
        for kind, table in (('ip', self.ip_buckets), ('subnet', self.subnet_buckets)):
            for key in table.keys():
                with self.locks.hold((kind, key)):
                    bucket = table.get(key)
                    if bucket is None:
                        continue
                    bucket.prune(time.time())
                    if bucket.empty:
                        table.discard(key, bucket)
                        removed += 1

        for ip in self.violations.keys():
            with self.locks.hold(('ip', ip)):
                record = self.violations.get(ip)
                if record is None:
                    continue
                now = time.time()
                lapsed_at = max(record.blocked_until, record.last_violation_at)
                if not record.blocked(now) and now - lapsed_at > TTL.ONE_HOUR:
                    self.violations.discard(ip, record)
                    removed += 1

        if removed:
            logger.debug('Swept rate limiter state.', extra={'event': 'RATE_LIMITER_SWEEP', 'removed': removed})
        return removed

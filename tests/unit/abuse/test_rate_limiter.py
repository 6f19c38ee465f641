"""Unit tests for the sliding-window RateLimiter

Test coverage includes:

1. User-agent classification and backoff tiers
2. Per-IP caps
   - Minute and hour windows, Retry-After from the oldest timestamp.
   - Suspicious user agents get the throttled (floored) caps.
   - Rejected requests are not counted against the window.
3. Progressive backoff
   - The third violation blocks for at least 5 minutes, even once the window clears.
4. Per-subnet caps
5. Concurrency: parallel requests from one IP never exceed the cap
6. Sweeping stale state
"""

import threading

import pytest
from freezegun import freeze_time

from linkguard.abuse.rate_limiter import RateLimiter, backoff_seconds, is_suspicious_user_agent
from linkguard.exceptions import AdmissionDeniedError, BackoffBlockedError, RateLimitedError, SubnetRateLimitedError
from linkguard.utils.settings import AbuseSettings, DEFAULT_BACKOFF_TIERS


BROWSER_UA = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15'


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(AbuseSettings())


def admit_n(limiter: RateLimiter, n: int, ip: str = '203.0.113.7', user_agent: str = BROWSER_UA) -> None:
    for _ in range(n):
        limiter.admit(ip, user_agent)


# -------------------------------
# 1. User agents and backoff tiers
# -------------------------------


@pytest.mark.parametrize(
    'user_agent, expected',
    [
        ('', True),
        (None, True),
        ('curl/8.4.0', True),
        ('python-requests/2.32', True),
        ('Mozilla/5.0 (compatible; Googlebot/2.1)', True),
        ('Mozilla/5.0 HeadlessChrome/120.0', True),
        ('Bottle/0.12', False),
        (BROWSER_UA, False),
    ],
)
def test_is_suspicious_user_agent(user_agent, expected):
    assert is_suspicious_user_agent(user_agent) is expected


@pytest.mark.parametrize(
    'violations, expected',
    [
        (0, 0),
        (2, 0),
        (3, 300),
        (5, 300),
        (6, 1800),
        (10, 3600),
        (19, 3600),
        (20, 86400),
        (100, 86400),
    ],
)
def test_backoff_seconds(violations, expected):
    assert backoff_seconds(violations, DEFAULT_BACKOFF_TIERS) == expected


# -------------------------------
# 2. Per-IP caps
# -------------------------------


@freeze_time('2025-10-15 12:00:00')
def test_minute_cap(limiter):
    admit_n(limiter, 5)

    with pytest.raises(RateLimitedError) as exc_info:
        limiter.admit('203.0.113.7', BROWSER_UA)

    assert 1 <= exc_info.value.retry_after <= 60
    assert exc_info.value.status_code == 429


def test_retry_after_is_measured_from_oldest_request(limiter):
    with freeze_time('2025-10-15 12:00:00') as frozen:
        limiter.admit('203.0.113.7', BROWSER_UA)
        frozen.tick(10)
        admit_n(limiter, 4)

        with pytest.raises(RateLimitedError) as exc_info:
            limiter.admit('203.0.113.7', BROWSER_UA)
        assert exc_info.value.retry_after == 50

        # The oldest request leaves the window, one slot frees up
        frozen.tick(50)
        limiter.admit('203.0.113.7', BROWSER_UA)


def test_hour_cap():
    limiter = RateLimiter(AbuseSettings(rate_ip_per_minute=100, rate_ip_per_hour=3))

    with freeze_time('2025-10-15 12:00:00') as frozen:
        admit_n(limiter, 3)
        frozen.tick(600)

        with pytest.raises(RateLimitedError) as exc_info:
            limiter.admit('203.0.113.7', BROWSER_UA)
        assert exc_info.value.retry_after == 3000


@freeze_time('2025-10-15 12:00:00')
def test_suspicious_user_agent_is_throttled(limiter):
    assert limiter.ip_caps(suspicious=True) == (2, 25)

    assert limiter.admit('203.0.113.7', 'curl/8.4.0') is True
    assert limiter.admit('203.0.113.7', 'curl/8.4.0') is True
    with pytest.raises(RateLimitedError):
        limiter.admit('203.0.113.7', 'curl/8.4.0')


@freeze_time('2025-10-15 12:00:00')
def test_throttle_factor_floors_caps():
    limiter = RateLimiter(AbuseSettings(rate_ip_per_minute=5, rate_ip_per_hour=51, ua_throttle_factor=0.5))
    assert limiter.ip_caps(suspicious=True) == (2, 25)
    assert limiter.ip_caps(suspicious=False) == (5, 51)


@freeze_time('2025-10-15 12:00:00')
def test_rejected_requests_are_not_counted(limiter):
    admit_n(limiter, 5)
    for _ in range(2):
        with pytest.raises(RateLimitedError):
            limiter.admit('203.0.113.7', BROWSER_UA)

    bucket = limiter.ip_buckets.get('203.0.113.7')
    assert len(bucket.minute) == 5
    assert limiter.violation_count('203.0.113.7') == 2


@freeze_time('2025-10-15 12:00:00')
def test_ips_are_limited_independently(limiter):
    admit_n(limiter, 5, ip='203.0.113.7')
    admit_n(limiter, 5, ip='198.51.100.7')


# -------------------------------
# 3. Progressive backoff
# -------------------------------


def test_third_violation_blocks_for_five_minutes(limiter):
    with freeze_time('2025-10-15 12:00:00') as frozen:
        admit_n(limiter, 5)
        for _ in range(3):
            with pytest.raises(RateLimitedError):
                limiter.admit('203.0.113.7', BROWSER_UA)
        assert limiter.violation_count('203.0.113.7') == 3

        # The minute window is clear, the block still holds
        frozen.tick(61)
        with pytest.raises(BackoffBlockedError) as exc_info:
            limiter.admit('203.0.113.7', BROWSER_UA)
        assert exc_info.value.retry_after == 239

        frozen.tick(239)
        limiter.admit('203.0.113.7', BROWSER_UA)


def test_blocked_requests_do_not_add_violations(limiter):
    with freeze_time('2025-10-15 12:00:00'):
        admit_n(limiter, 5)
        for _ in range(3):
            with pytest.raises(RateLimitedError):
                limiter.admit('203.0.113.7', BROWSER_UA)
        for _ in range(5):
            with pytest.raises(BackoffBlockedError):
                limiter.admit('203.0.113.7', BROWSER_UA)

    assert limiter.violation_count('203.0.113.7') == 3


def test_sixth_violation_escalates_block():
    limiter = RateLimiter(AbuseSettings(rate_ip_per_minute=1))

    with freeze_time('2025-10-15 12:00:00') as frozen:
        limiter.admit('203.0.113.7', BROWSER_UA)
        for _ in range(3):
            with pytest.raises(RateLimitedError):
                limiter.admit('203.0.113.7', BROWSER_UA)

        # Violations 4 to 6, each after serving the current 5 minute block
        for _ in range(3):
            frozen.tick(301)
            limiter.admit('203.0.113.7', BROWSER_UA)
            with pytest.raises(RateLimitedError):
                limiter.admit('203.0.113.7', BROWSER_UA)

        with pytest.raises(BackoffBlockedError) as exc_info:
            limiter.admit('203.0.113.7', BROWSER_UA)
        assert exc_info.value.retry_after == 1800


# -------------------------------
# 4. Per-subnet caps
# -------------------------------


@freeze_time('2025-10-15 12:00:00')
def test_subnet_cap():
    limiter = RateLimiter(AbuseSettings(rate_subnet_per_minute=3))
    for host in range(1, 4):
        limiter.admit(f'203.0.113.{host}', BROWSER_UA)

    with pytest.raises(SubnetRateLimitedError) as exc_info:
        limiter.admit('203.0.113.200', BROWSER_UA)

    assert exc_info.value.retry_after == 60
    # Subnet throttling doesn't count against the individual IP
    assert limiter.violation_count('203.0.113.200') == 0
    # Another subnet is unaffected
    limiter.admit('198.51.100.1', BROWSER_UA)


@freeze_time('2025-10-15 12:00:00')
def test_subnet_rejection_does_not_consume_ip_window():
    limiter = RateLimiter(AbuseSettings(rate_subnet_per_minute=1))
    limiter.admit('203.0.113.1', BROWSER_UA)

    with pytest.raises(SubnetRateLimitedError):
        limiter.admit('203.0.113.2', BROWSER_UA)

    assert limiter.ip_buckets.get('203.0.113.2').empty


# -------------------------------
# 5. Concurrency
# -------------------------------


def test_concurrent_requests_never_exceed_cap(limiter):
    barrier = threading.Barrier(20)
    admitted, rejected = [], []

    def worker():
        barrier.wait()
        try:
            limiter.admit('203.0.113.7', BROWSER_UA)
        except AdmissionDeniedError:
            # RateLimitedError until the third violation, BackoffBlockedError after
            rejected.append(1)
        else:
            admitted.append(1)

    threads = [threading.Thread(target=worker) for _ in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(admitted) == 5
    assert len(admitted) + len(rejected) == 20


# -------------------------------
# 6. Sweeping stale state
# -------------------------------


def test_sweep_drops_idle_buckets(limiter):
    with freeze_time('2025-10-15 12:00:00') as frozen:
        limiter.admit('203.0.113.7', BROWSER_UA)
        assert limiter.sweep() == 0

        frozen.tick(3601)
        assert limiter.sweep() == 2  # IP bucket and subnet bucket
        assert len(limiter.ip_buckets) == 0
        assert len(limiter.subnet_buckets) == 0


def test_sweep_keeps_violations_while_blocked(limiter):
    with freeze_time('2025-10-15 12:00:00') as frozen:
        admit_n(limiter, 5)
        for _ in range(3):
            with pytest.raises(RateLimitedError):
                limiter.admit('203.0.113.7', BROWSER_UA)

        frozen.tick(3601)
        limiter.sweep()
        # Block lapsed 55 minutes ago
        assert limiter.violation_count('203.0.113.7') == 3

        frozen.tick(300)
        limiter.sweep()
        assert limiter.violation_count('203.0.113.7') == 0


def test_tracked_keys_are_bounded():
    limiter = RateLimiter(AbuseSettings(max_tracked_keys=10))
    with freeze_time('2025-10-15 12:00:00'):
        for i in range(50):
            limiter.admit(f'10.0.{i}.1', BROWSER_UA)

    assert len(limiter.ip_buckets) == 10
    assert len(limiter.subnet_buckets) == 10

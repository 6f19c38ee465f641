"""Abuse-control thresholds

Every threshold has a hardcoded default; deployments override any subset through
the `"abuse"` object of the AppConfig document.

Example:
    >>> settings = AbuseSettings.from_config({'rate_ip_per_minute': 10})
    >>> settings.rate_ip_per_minute
    10
    >>> settings.rate_subnet_per_minute
    30
"""

import dataclasses
from dataclasses import dataclass
from typing import Any

from linkguard.constants import TTL, Limits
from linkguard.exceptions import BadConfigurationError


# (cumulative violations, block duration in seconds); highest tier met wins
DEFAULT_BACKOFF_TIERS = (
    (3, 5 * TTL.ONE_MINUTE),
    (6, 30 * TTL.ONE_MINUTE),
    (10, TTL.ONE_HOUR),
    (20, TTL.ONE_DAY),
)


@dataclass(frozen=True)
class AbuseSettings:
    # Rate limiter
    rate_ip_per_minute: int = 5
    rate_ip_per_hour: int = 50
    rate_subnet_per_minute: int = 30
    rate_subnet_per_hour: int = 200
    ua_throttle_factor: float = 0.5
    backoff_tiers: tuple[tuple[int, int], ...] = DEFAULT_BACKOFF_TIERS
    max_tracked_keys: int = 100_000

    # URL safety
    min_trust_score: int = 20

    # Monitoring and kill switch
    killswitch_threshold: int = 10
    killswitch_window_seconds: int = 5 * TTL.ONE_MINUTE
    killswitch_cooldown_seconds: int = 15 * TTL.ONE_MINUTE
    anomaly_clicks_threshold: int = 10_000
    anomaly_clicks_window_seconds: int = 5 * TTL.ONE_MINUTE
    ip_spike_threshold: int = 10
    flagged_history_size: int = 1_000
    max_tracked_links: int = 10_000

    # In-process redirect cache
    cache_capacity: int = 10_000
    cache_ttl_seconds: float = 30.0
    negative_cache_ttl_seconds: float = 2.0

    # Link creation
    min_ttl_seconds: int = Limits.MIN_TTL_SECONDS
    max_ttl_seconds: int = Limits.MAX_TTL_SECONDS
    shortcode_salt: str = 'default_salt'
    shortcode_length: int = 7

    # External verification
    captcha_score_threshold: float = 0.5
    challenge_trust_score: int = 50
    external_timeout_seconds: float = 5.0

    # Background sweeper
    sweep_interval_seconds: float = float(5 * TTL.ONE_MINUTE)

    @classmethod
    def from_config(cls, overrides: dict[str, Any] | None = None) -> 'AbuseSettings':
        """Build settings from the AppConfig `"abuse"` object.

        Values are coerced to the type of the field's default.

        Raises:
            BadConfigurationError:
                On unknown keys or values that can't be coerced.
        """
        overrides = overrides or {}
        fields = {f.name: f for f in dataclasses.fields(cls)}

        unknown = sorted(set(overrides) - set(fields))
        if unknown:
            raise BadConfigurationError(f'Unknown abuse settings: {", ".join(unknown)}')

        values = {}
        for name, value in overrides.items():
            default = fields[name].default
            try:
                if name == 'backoff_tiers':
                    values[name] = tuple(sorted((int(count), int(seconds)) for count, seconds in value))
                else:
                    values[name] = type(default)(value)
            except (TypeError, ValueError) as e:
                raise BadConfigurationError(f'Bad value for abuse setting {name!r}: {value!r}') from e

        return cls(**values)

from enum import StrEnum


class TTL:
    """TTL durations in seconds."""

    ONE_MINUTE = 60
    ONE_HOUR = 3_600  # 60 * 60
    ONE_DAY = 86_400  # 60 * 60 * 24
    # Longest lifetime a caller may request for a short link (1 year in seconds)
    ONE_YEAR = 31_536_000  # 60 * 60 * 24 * 365
    # Expired records stay readable this long so redirects answer 410 instead of 404
    EXPIRED_GRACE = ONE_DAY


class Limits:
    """Input limits for link creation."""

    MAX_URL_LENGTH = 2_048
    MAX_SHORTCODE_LENGTH = 20
    MIN_TTL_SECONDS = TTL.ONE_MINUTE
    MAX_TTL_SECONDS = TTL.ONE_YEAR
    # Forwarded-for chains longer than this are rejected outright
    MAX_FORWARDED_HOPS = 5
    # Attempts at minting a generated shortcode before giving up
    MAX_SHORTCODE_ATTEMPTS = 3


class ENV:
    """Environment variable names."""

    class App(StrEnum):
        APP_ENV = 'APP_ENV'
        APP_NAME = 'APP_NAME'
        AWS_SAM_LOCAL = 'AWS_SAM_LOCAL'
        LOG_LEVEL = 'LOG_LEVEL'

    class AppConfig(StrEnum):
        APP_ID = 'APPCONFIG_APP_ID'
        ENV_ID = 'APPCONFIG_ENV_ID'
        PROFILE_ID = 'APPCONFIG_PROFILE_ID'
        AGENT_URL = 'APPCONFIG_AGENT_URL'
        PROFILE_NAME = 'APPCONFIG_PROFILE_NAME'

    class Verification(StrEnum):
        RECAPTCHA_SECRET_KEY = 'RECAPTCHA_SECRET_KEY'  # noqa: S105
        SAFE_BROWSING_API_KEY = 'GOOGLE_SAFE_BROWSING_API_KEY'

    class Monitoring(StrEnum):
        SECRET = 'MONITORING_SECRET'  # noqa: S105


# Error codes
UNKNOWN_INTERNAL_SERVER_ERROR = 'UNKNOWN_INTERNAL_SERVER_ERROR'

"""Application-wide exception taxonomy.

Every error carries an `error_code` (stable identifier surfaced to API clients)
and a `status_code` (HTTP status the Lambda handlers respond with).

Families:
    ValidationError:
        Malformed input. Terminal, never retried.
    AdmissionDeniedError:
        Rate limits, backoff blocks, the kill switch, proxy and CAPTCHA gates.
        Retriable after `retry_after` seconds when one is given.
    SafetyRejectedError:
        Destination URL failed a safety check. Not retriable without changing the URL.
    ExternalServiceError:
        A third-party verification call failed. Callers fail open.
    ConfigurationError / InfrastructureError:
        Deployment problems, surfaced as 500.
"""


class LinkGuardError(Exception):
    """Base exception for all application-specific errors."""

    error_code = 'app:linkguard_error'
    status_code = 500


class ConfigurationError(LinkGuardError):
    """Base exception for all configuration errors."""

    error_code = 'config:configuration_error'


class MissingEnvironmentVariableError(ConfigurationError):
    """Raised when a required environment variable is missing."""

    error_code = 'config:missing_environment_variable_error'


class BadConfigurationError(ConfigurationError):
    """Raised when the application is configured with invalid parameters."""

    error_code = 'config:bad_configuration_error'


class InfrastructureError(LinkGuardError):
    """Base exception for all infrastructure (AWS) errors."""

    error_code = 'infra:infrastructure_error'


class AppConfigError(InfrastructureError):
    """Raised when AppConfig responds with erroneous data."""

    error_code = 'infra:appconfig_error'


class ExternalServiceError(InfrastructureError):
    """Raised when a third-party verification service times out or errors."""

    error_code = 'infra:external_service_error'


# -------------------------------
# Validation
# -------------------------------


class ValidationError(LinkGuardError):
    """Base exception for malformed client input."""

    error_code = 'validation:validation_error'
    status_code = 400


class InvalidRequestBodyError(ValidationError):
    """Raised when the request body is not a JSON object."""

    error_code = 'validation:invalid_request_body'


class InvalidURLError(ValidationError):
    """Raised when the destination URL is missing, too long or not http(s)."""

    error_code = 'validation:invalid_url'


class InvalidShortcodeError(ValidationError):
    """Raised when a custom shortcode has bad characters or is too long."""

    error_code = 'validation:invalid_shortcode'


class InvalidTTLError(ValidationError):
    """Raised when the requested TTL is not an integer within bounds."""

    error_code = 'validation:invalid_ttl'


# -------------------------------
# Admission
# -------------------------------


class AdmissionDeniedError(LinkGuardError):
    """Base exception for requests refused before doing any work.

    Attributes:
        retry_after (int | None):
            Seconds the client should wait before retrying, if known.
    """

    error_code = 'admission:admission_denied'
    status_code = 429

    def __init__(self, message: str = '', retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class RateLimitedError(AdmissionDeniedError):
    """Raised when a client IP exceeds its sliding-window cap."""

    error_code = 'admission:rate_limited'


class SubnetRateLimitedError(AdmissionDeniedError):
    """Raised when a client subnet exceeds its sliding-window cap."""

    error_code = 'admission:subnet_rate_limited'


class BackoffBlockedError(AdmissionDeniedError):
    """Raised while a client IP serves a progressive backoff block."""

    error_code = 'admission:backoff_blocked'


class KillSwitchActiveError(AdmissionDeniedError):
    """Raised when link creation is globally disabled."""

    error_code = 'admission:kill_switch_active'
    status_code = 503


class ProxyHopsExceededError(AdmissionDeniedError):
    """Raised when a request traversed too many forwarding proxies."""

    error_code = 'admission:proxy_hops_exceeded'
    status_code = 403


class CaptchaRequiredError(AdmissionDeniedError):
    """Raised when a suspicious request carries no CAPTCHA token."""

    error_code = 'admission:captcha_required'
    status_code = 403


class CaptchaFailedError(AdmissionDeniedError):
    """Raised when CAPTCHA verification rejects the token or scores it too low."""

    error_code = 'admission:captcha_failed'
    status_code = 403


# -------------------------------
# Safety and lifecycle
# -------------------------------


class SafetyRejectedError(LinkGuardError):
    """Raised when a destination URL fails a safety gate.

    Attributes:
        reason (str):
            Reason tag also reported to monitoring, e.g. 'nested_shortener'.
    """

    error_code = 'safety:safety_rejected'
    status_code = 400

    def __init__(self, message: str = '', reason: str = 'unsafe_url'):
        super().__init__(message)
        self.reason = reason


class LinkExpiredError(LinkGuardError):
    """Raised when a short link exists but its expiry has passed."""

    error_code = 'link:link_expired'
    status_code = 410

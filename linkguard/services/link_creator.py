"""Link creation pipeline

Stages, in order. Every stage can short-circuit the request:
    1. Kill switch                      -> KillSwitchActiveError (503)
    2. Proxy inspection                 -> ProxyHopsExceededError (403)
    3. Rate limiter                     -> BackoffBlockedError / RateLimitedError / SubnetRateLimitedError (429)
    4. Request validation               -> ValidationError subclasses (400)
    5. URL safety gate                  -> SafetyRejectedError (400)
    6. Safe Browsing (optional)         -> SafetyRejectedError (400)
    7. CAPTCHA for suspicious requests  -> CaptchaRequiredError / CaptchaFailedError (403)
    8. Create-if-absent write to Redis  -> LinkAlreadyExistsError (409)
    9. Cache invalidation, monitoring

Shortcodes are either caller supplied (validated, written with SET NX so only
one of two racing creators wins) or minted from the global Redis counter through
`generate_shortcode`, a bijection, so generated codes never collide with each other.
"""

import json
import base64
import logging
import binascii
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from linkguard.constants import Limits
from linkguard.dao.base import LinkBaseDAO
from linkguard.dao.cache import LocalLinkCache
from linkguard.dao.exceptions import LinkAlreadyExistsError
from linkguard.exceptions import (
    CaptchaFailedError,
    CaptchaRequiredError,
    InvalidRequestBodyError,
    InvalidShortcodeError,
    InvalidTTLError,
    InvalidURLError,
    KillSwitchActiveError,
)
from linkguard.models import RedirectRecord, RedirectStatus, RequestMeta
from linkguard.types import LambdaEvent
from linkguard.utils.helpers import get_short_url, iso_from_ms, now_ms
from linkguard.utils.settings import AbuseSettings
from linkguard.utils.shortener import generate_shortcode
from linkguard.abuse.client_identity import normalized_headers
from linkguard.abuse.monitoring import MonitoringCore
from linkguard.abuse.proxy_detector import ProxyDetector
from linkguard.abuse.rate_limiter import RateLimiter
from linkguard.abuse.url_safety import SAFE_BROWSING_MATCH, UrlSafetyScanner
from linkguard.abuse.verification import CaptchaVerifier, SafeBrowsingClient, should_challenge


logger = logging.getLogger(__name__)


CUSTOM_SHORTCODE_PATTERN = re.compile(r'[a-zA-Z0-9-]+')
ALLOWED_SCHEMES = frozenset({'http', 'https'})


def parse_body(event: LambdaEvent) -> dict[str, Any]:
    """Decode the JSON object body of an API Gateway event

    Raises:
        InvalidRequestBodyError:
            If the body isn't valid JSON or isn't a JSON object.
    """
    raw = event.get('body') or '{}'
    try:
        if event.get('isBase64Encoded'):
            raw = base64.b64decode(raw).decode('utf-8')
        body = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidRequestBodyError('Invalid JSON body.') from e

    if not isinstance(body, dict):
        raise InvalidRequestBodyError('Invalid JSON body.')
    return body


@dataclass(frozen=True)
class CreateLinkRequest:
    original_url: str
    custom_shortcode: str | None = None
    ttl: int | None = None
    redirect_status: RedirectStatus = RedirectStatus.PERMANENT_REDIRECT
    captcha_token: str | None = None

    @classmethod
    def from_body(
        cls,
        body: dict[str, Any],
        min_ttl: int = Limits.MIN_TTL_SECONDS,
        max_ttl: int = Limits.MAX_TTL_SECONDS,
    ) -> 'CreateLinkRequest':
        """Validate a `POST /shorten` body

        Body fields:
            originalUrl (str):       required, http(s), at most 2048 characters
            customShortCode (str):   optional, letters, digits and hyphens, at most 20 characters
            ttl (int):               optional, seconds between min_ttl and max_ttl
            redirectType (int|str):  optional, 301, 302 or 308; anything else means 308
            captchaToken (str):      optional reCAPTCHA token

        Raises:
            InvalidURLError, InvalidShortcodeError, InvalidTTLError
        """
        original_url = body.get('originalUrl')
        if not original_url or not isinstance(original_url, str):
            raise InvalidURLError('Original URL is required.')
        if len(original_url) > Limits.MAX_URL_LENGTH:
            raise InvalidURLError(f'URL is too long (max {Limits.MAX_URL_LENGTH} characters).')
        try:
            components = urlsplit(original_url)
        except ValueError as e:
            raise InvalidURLError('Invalid URL format. Must start with http:// or https://') from e
        if components.scheme.lower() not in ALLOWED_SCHEMES or not components.netloc:
            raise InvalidURLError('Invalid URL format. Must start with http:// or https://')

        custom_shortcode = body.get('customShortCode') or None
        if custom_shortcode is not None:
            if not isinstance(custom_shortcode, str) or not CUSTOM_SHORTCODE_PATTERN.fullmatch(custom_shortcode):
                raise InvalidShortcodeError('Short code can only contain letters, numbers, and hyphens.')
            if len(custom_shortcode) > Limits.MAX_SHORTCODE_LENGTH:
                raise InvalidShortcodeError(f'Short code must be {Limits.MAX_SHORTCODE_LENGTH} characters or fewer.')

        captcha_token = body.get('captchaToken')
        return cls(
            original_url=original_url,
            custom_shortcode=custom_shortcode,
            ttl=cls._parse_ttl(body.get('ttl'), min_ttl, max_ttl),
            redirect_status=cls._parse_redirect_status(body.get('redirectType')),
            captcha_token=captcha_token if isinstance(captcha_token, str) and captcha_token else None,
        )

    @staticmethod
    def _parse_ttl(value: Any, min_ttl: int, max_ttl: int) -> int | None:
        if value is None or value == '' or value == 0:
            return None
        if isinstance(value, bool):
            raise InvalidTTLError(f'TTL must be at least {min_ttl} seconds.')
        try:
            ttl = int(value)
        except (TypeError, ValueError) as e:
            raise InvalidTTLError(f'TTL must be at least {min_ttl} seconds.') from e
        if ttl < min_ttl:
            raise InvalidTTLError(f'TTL must be at least {min_ttl} seconds.')
        if ttl > max_ttl:
            raise InvalidTTLError(f'TTL must not exceed {max_ttl} seconds.')
        return ttl

    @staticmethod
    def _parse_redirect_status(value: Any) -> RedirectStatus:
        try:
            return RedirectStatus(int(value))
        except (TypeError, ValueError):
            return RedirectStatus.PERMANENT_REDIRECT


@dataclass(frozen=True)
class CreatedLink:
    shortcode: str
    short_url: str
    original_url: str
    expires_at_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            'shortCode': self.shortcode,
            'shortUrl': self.short_url,
            'originalUrl': self.original_url,
            'expiresAt': iso_from_ms(self.expires_at_ms),
        }


class LinkCreator:
    """Run a creation request through every abuse gate and persist the link

    Args:
        dao (LinkBaseDAO):
            Persistent store with atomic create-if-absent.
        cache (LocalLinkCache):
            Redirect cache to invalidate once a code exists.
        monitor (MonitoringCore):
            Kill switch owner; receives flagged links and creations.
        rate_limiter (RateLimiter):
            Per-IP / per-subnet admission control.
        scanner (UrlSafetyScanner | None):
            URL safety gate (built from `monitor` when omitted).
        proxy_detector (ProxyDetector | None):
            Proxy and data-center detection.
        safe_browsing (SafeBrowsingClient | None):
            Optional threat-matching lookup.
        captcha (CaptchaVerifier | None):
            Optional reCAPTCHA verification for suspicious requests.
        settings (AbuseSettings | None):
            TTL bounds, shortcode parameters and CAPTCHA trigger score.
    """

    def __init__(
        self,
        dao: LinkBaseDAO,
        cache: LocalLinkCache,
        monitor: MonitoringCore,
        rate_limiter: RateLimiter,
        scanner: UrlSafetyScanner | None = None,
        proxy_detector: ProxyDetector | None = None,
        safe_browsing: SafeBrowsingClient | None = None,
        captcha: CaptchaVerifier | None = None,
        settings: AbuseSettings | None = None,
    ):
        self.settings = settings or AbuseSettings()
        self.dao = dao
        self.cache = cache
        self.monitor = monitor
        self.rate_limiter = rate_limiter
        self.scanner = scanner or UrlSafetyScanner(monitor, min_trust_score=self.settings.min_trust_score)
        self.proxy_detector = proxy_detector or ProxyDetector()
        self.safe_browsing = safe_browsing
        self.captcha = captcha

    def create(self, event: LambdaEvent) -> CreatedLink:
        """Create a short link from a `POST /shorten` API Gateway event

        Returns:
            CreatedLink: the stored shortcode, its public URL and expiry

        Raises:
            LinkGuardError: see the module docstring for the error of each stage
        """
        # 1- Kill switch short-circuits everything
        if self.monitor.is_kill_switch_active():
            raise KillSwitchActiveError(
                'Link creation is temporarily disabled due to detected abuse. Please try again later.',
                retry_after=self.monitor.kill_switch_retry_after(),
            )

        # 2- Proxy / anonymity detection
        meta = RequestMeta()
        self.proxy_detector.inspect(event, meta)

        # 3- Rate limiting
        meta.suspicious_ua = self.rate_limiter.admit(meta.client_ip, meta.user_agent)

        # 4- Request validation
        request = CreateLinkRequest.from_body(
            parse_body(event),
            min_ttl=self.settings.min_ttl_seconds,
            max_ttl=self.settings.max_ttl_seconds,
        )

        # 5- URL safety gate
        self.scanner.gate(request.original_url, meta)

        # 6- Safe Browsing
        if self.safe_browsing is not None and self.safe_browsing.is_flagged(request.original_url):
            self.scanner.reject(
                request.original_url,
                SAFE_BROWSING_MATCH,
                'This URL has been flagged as unsafe by Google Safe Browsing and cannot be shortened.',
            )

        # 7- CAPTCHA, for suspicious requests only
        if self.captcha is not None and should_challenge(meta, self.settings.challenge_trust_score):
            self._verify_captcha(event, request, meta)

        # 8- Persist
        expires_at_ms = now_ms() + request.ttl * 1000 if request.ttl else 0
        record = RedirectRecord(url=request.original_url, expires_at_ms=expires_at_ms, redirect_status=request.redirect_status)
        shortcode = self._store(request, record)

        # 9- Make the new code visible and account for it
        self.cache.invalidate(shortcode)
        self.monitor.record_creation(shortcode, request.original_url, meta.client_ip)
        if self.monitor.ip_creation_spike(meta.client_ip):
            logger.warning(
                'Link creation spike from a single IP.',
                extra={'event': 'IP_CREATION_SPIKE', 'clientIp': meta.client_ip},
            )

        logger.info(
            'Created short link.',
            extra={'event': 'LINK_CREATED', 'shortcode': shortcode, 'clientIp': meta.client_ip, 'trustScore': meta.trust_score},
        )
        return CreatedLink(
            shortcode=shortcode,
            short_url=get_short_url(shortcode, event),
            original_url=request.original_url,
            expires_at_ms=expires_at_ms,
        )

    def _verify_captcha(self, event: LambdaEvent, request: CreateLinkRequest, meta: RequestMeta) -> None:
        token = request.captcha_token or normalized_headers(event).get('x-captcha-token')
        if not token:
            raise CaptchaRequiredError('CAPTCHA verification required. Please complete the CAPTCHA challenge.')
        if not self.captcha.verify(token, remote_ip=meta.client_ip):
            raise CaptchaFailedError('CAPTCHA verification failed. Please try again.')

    def _store(self, request: CreateLinkRequest, record: RedirectRecord) -> str:
        """Write the record and return its shortcode

        Custom codes get exactly one SET NX attempt. Generated codes only collide
        with a custom code that happens to look like one, in which case the next
        counter value is tried.
        """
        if request.custom_shortcode is not None:
            self.dao.insert(request.custom_shortcode, record, ttl=request.ttl)
            return request.custom_shortcode

        for attempt in range(1, Limits.MAX_SHORTCODE_ATTEMPTS + 1):
            counter = self.dao.count(increment=True)
            shortcode = generate_shortcode(counter, salt=self.settings.shortcode_salt, length=self.settings.shortcode_length)
            try:
                self.dao.insert(shortcode, record, ttl=request.ttl)
            except LinkAlreadyExistsError:
                if attempt == Limits.MAX_SHORTCODE_ATTEMPTS:
                    raise
                logger.warning(
                    'Generated shortcode is taken by a custom link. Retrying with the next counter value.',
                    extra={'event': 'SHORTCODE_COLLISION', 'shortcode': shortcode, 'attempt': attempt},
                )
            else:
                return shortcode

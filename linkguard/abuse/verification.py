"""Third-party verification clients (reCAPTCHA v3, Google Safe Browsing)

Both clients call out over HTTP with a bounded timeout and FAIL OPEN: when the
remote service times out, errors or answers with garbage, the failure is logged
and the request is let through. A verification outage must not take link
creation down with it.

Both are optional. `from_environment()` returns None when the matching secret
(RECAPTCHA_SECRET_KEY, GOOGLE_SAFE_BROWSING_API_KEY) isn't configured.

Example:
    >>> client = SafeBrowsingClient(api_key='...')
    >>> client.is_flagged('https://example.com')
    False
    >>> verifier = CaptchaVerifier(secret_key='...')
    >>> verifier.verify('token-from-frontend', remote_ip='203.0.113.7')
    True
"""

import os
import json
import logging
import http.client
import urllib.parse
import urllib.request
from typing import Any

from linkguard.constants import ENV
from linkguard.exceptions import ExternalServiceError
from linkguard.models import RequestMeta


logger = logging.getLogger(__name__)


SAFE_BROWSING_URL = 'https://safebrowsing.googleapis.com/v4/threatMatches:find'
RECAPTCHA_VERIFY_URL = 'https://www.google.com/recaptcha/api/siteverify'

THREAT_TYPES = ['MALWARE', 'SOCIAL_ENGINEERING', 'UNWANTED_SOFTWARE', 'POTENTIALLY_HARMFUL_APPLICATION']
CLIENT_ID = 'linkguard'
CLIENT_VERSION = '1.0.0'


def _post(url: str, data: bytes, content_type: str, timeout: float) -> dict[str, Any]:
    """POST a payload and decode the JSON object response

    Raises:
        ExternalServiceError:
            On timeouts, connection failures, HTTP errors and non-JSON bodies.
    """
    request = urllib.request.Request(url, data=data, method='POST', headers={'Content-Type': content_type})
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:  # noqa: S310
            document = json.load(response)
    except (OSError, http.client.HTTPException) as e:  # URLError and socket timeouts are OSErrors
        raise ExternalServiceError(f'Request to {urllib.parse.urlsplit(url).netloc} failed: {e}') from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ExternalServiceError(f'{urllib.parse.urlsplit(url).netloc} returned a malformed response.') from e

    if not isinstance(document, dict):
        raise ExternalServiceError(f'{urllib.parse.urlsplit(url).netloc} returned a malformed response.')
    return document


def should_challenge(meta: RequestMeta, challenge_trust_score: int = 50) -> bool:
    """Challenge suspicious user agents, proxied clients and low-trust destinations"""
    if meta.suspicious_ua or meta.proxied:
        return True
    return meta.trust_score is not None and meta.trust_score < challenge_trust_score


class SafeBrowsingClient:
    def __init__(self, api_key: str, timeout: float = 5.0, endpoint: str = SAFE_BROWSING_URL):
        self.api_key = api_key
        self.timeout = timeout
        self.endpoint = endpoint

    @classmethod
    def from_environment(cls, timeout: float = 5.0) -> 'SafeBrowsingClient | None':
        api_key = os.environ.get(ENV.Verification.SAFE_BROWSING_API_KEY)
        return cls(api_key=api_key, timeout=timeout) if api_key else None

    def payload(self, url: str) -> dict[str, Any]:
        return {
            'client': {'clientId': CLIENT_ID, 'clientVersion': CLIENT_VERSION},
            'threatInfo': {
                'threatTypes': THREAT_TYPES,
                'platformTypes': ['ANY_PLATFORM'],
                'threatEntryTypes': ['URL'],
                'threatEntries': [{'url': url}],
            },
        }

    def is_flagged(self, url: str) -> bool:
        """Return True only when Safe Browsing reports a threat match for the URL"""
        endpoint = f'{self.endpoint}?key={urllib.parse.quote(self.api_key, safe="")}'
        try:
            document = _post(endpoint, json.dumps(self.payload(url)).encode('utf-8'), 'application/json', self.timeout)
        except ExternalServiceError as e:
            logger.warning(
                'Safe Browsing lookup failed. Letting the URL through.',
                extra={'event': 'SAFE_BROWSING_UNAVAILABLE', 'reason': str(e)},
            )
            return False
        return bool(document.get('matches'))


class CaptchaVerifier:
    def __init__(
        self,
        secret_key: str,
        score_threshold: float = 0.5,
        timeout: float = 5.0,
        endpoint: str = RECAPTCHA_VERIFY_URL,
    ):
        self.secret_key = secret_key
        self.score_threshold = score_threshold
        self.timeout = timeout
        self.endpoint = endpoint

    @classmethod
    def from_environment(cls, score_threshold: float = 0.5, timeout: float = 5.0) -> 'CaptchaVerifier | None':
        secret_key = os.environ.get(ENV.Verification.RECAPTCHA_SECRET_KEY)
        return cls(secret_key=secret_key, score_threshold=score_threshold, timeout=timeout) if secret_key else None

    def verify(self, token: str, remote_ip: str = '') -> bool:
        """Verify a reCAPTCHA v3 token

        Returns:
            bool: False if reCAPTCHA rejects the token or scores it below the
                  threshold, True otherwise (including when reCAPTCHA is unreachable).
        """
        form = urllib.parse.urlencode({'secret': self.secret_key, 'response': token, 'remoteip': remote_ip})
        try:
            document = _post(self.endpoint, form.encode('utf-8'), 'application/x-www-form-urlencoded', self.timeout)
        except ExternalServiceError as e:
            logger.warning(
                'CAPTCHA verification failed to complete. Letting the request through.',
                extra={'event': 'CAPTCHA_UNAVAILABLE', 'reason': str(e)},
            )
            return True

        if not document.get('success'):
            return False
        score = document.get('score')
        if score is None:
            return True
        try:
            return float(score) >= self.score_threshold
        except (TypeError, ValueError):
            logger.warning(
                'reCAPTCHA returned a malformed score. Letting the request through.',
                extra={'event': 'CAPTCHA_UNAVAILABLE', 'score': score},
            )
            return True

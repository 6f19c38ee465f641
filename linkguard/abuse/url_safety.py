"""Destination URL safety heuristics

Functions:
    is_ip_literal_host(url) -> bool
    is_nested_shortener(url) -> bool
    has_dangerous_pattern(url) -> bool
    trust_score(url) -> int

Classes:
    UrlSafetyScanner: gate a destination URL and report every rejection to monitoring

Example:
    >>> trust_score('https://example.com')
    80
    >>> trust_score('https://example.tk')
    50
    >>> is_nested_shortener('https://www.bit.ly/abc')
    True
"""

import re
import socket
import ipaddress
import logging
from urllib.parse import SplitResult, parse_qsl, urlsplit

from linkguard.exceptions import SafetyRejectedError
from linkguard.models import RequestMeta


logger = logging.getLogger(__name__)


# Rejection reasons reported to monitoring
IP_BASED_URL = 'ip_based_url'
NESTED_SHORTENER = 'nested_shortener'
DANGEROUS_PATTERN = 'dangerous_pattern'
LOW_TRUST_SCORE = 'low_trust_score'
SAFE_BROWSING_MATCH = 'safe_browsing_match'

# fmt: off
SHORTENER_DOMAINS = frozenset(
    {
        'bit.ly', 'tinyurl.com', 'goo.gl', 't.co', 'ow.ly', 'is.gd',
        'buff.ly', 'adf.ly', 'bl.ink', 'lnkd.in', 'db.tt', 'qr.ae',
        'rebrand.ly', 'rb.gy', 'short.io', 'cutt.ly', 'shorturl.at',
        'tiny.cc', 'v.gd', 'vo.la', 'clck.ru', 'trib.al', 'su.pr',
    }
)

SUSPICIOUS_TLDS = frozenset(
    {
        '.tk', '.ml', '.ga', '.cf', '.gq', '.xyz', '.top',
        '.work', '.click', '.link', '.buzz', '.surf', '.icu',
    }
)
# fmt: on

DANGEROUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r'login.*\.php$',
        r'signin.*\.html$',
        r'verify[-_]?account',
        r'secure[-_]?update',
        r'confirm[-_]?identity',
        r'account[-_]?verify',
        r'wallet[-_]?connect',
        r'password[-_]?reset',
        r'@',  # userinfo in a URL hides the real host from the reader
        r'\.(exe|bat|cmd|scr|pif|msi|dll|vbs|js|wsf|ps1)$',
    )
)

MALWARE_HOST_PATTERNS = (
    re.compile(r'^[a-z0-9]{20,}\.', re.IGNORECASE),  # long random subdomain
    re.compile(r'\d{3,}\.'),
)

_DOTTED_QUAD_RE = re.compile(r'^\d{1,3}(\.\d{1,3}){3}$')
_NUMERIC_HOST_RE = re.compile(r'^[0-9a-fx.]+$', re.IGNORECASE)

BASELINE_TRUST_SCORE = 70


def _split(url: str) -> SplitResult | None:
    """Split an absolute URL, or return None when it has no scheme or host"""
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None
    if not parts.scheme or not hostname:
        return None
    return parts


def is_ip_literal_host(url: str) -> bool:
    """True for dotted-quad, IPv6 and shorthand or hex/octal/decimal encoded IP hosts"""
    parts = _split(url)
    if parts is None:
        return False

    host = parts.hostname
    if _DOTTED_QUAD_RE.match(host):
        return True
    if parts.netloc.rsplit('@', 1)[-1].startswith('['):
        return True
    if ':' in host:
        try:
            ipaddress.IPv6Address(host)
        except ValueError:
            pass
        else:
            return True
    # inet_aton accepts the shorthand, hex and octal forms browsers resolve (127.1, 0x7f.0.0.1, 0177.0.0.1)
    if _NUMERIC_HOST_RE.match(host):
        try:
            socket.inet_aton(host)
        except OSError:
            return False
        return True
    return False


def is_nested_shortener(url: str) -> bool:
    parts = _split(url)
    if parts is None:
        return False
    host = parts.hostname.removeprefix('www.')
    return host in SHORTENER_DOMAINS


def has_dangerous_pattern(url: str) -> bool:
    return any(pattern.search(url) for pattern in DANGEROUS_PATTERNS)


def trust_score(url: str) -> int:
    """Heuristic 0-100 legitimacy score of a destination URL

    Starts at 70 and adjusts:
        +10  https
        -30  suspicious TLD
        -10  more than 3 host labels
        -20  any host label longer than 20 characters
        -25  host looks machine generated (long random label, 3+ consecutive digits)
        -10  URL longer than 500 characters, another -10 past 1000
        -10  more than 10 query parameters

    Returns 0 for URLs that can't be parsed.
    """
    parts = _split(url)
    if parts is None:
        return 0

    host = parts.hostname
    labels = host.split('.')
    score = BASELINE_TRUST_SCORE

    if parts.scheme.lower() == 'https':
        score += 10
    if f'.{labels[-1]}' in SUSPICIOUS_TLDS:
        score -= 30
    if len(labels) > 3:
        score -= 10
    if any(len(label) > 20 for label in labels):
        score -= 20
    if any(pattern.search(host) for pattern in MALWARE_HOST_PATTERNS):
        score -= 25
    if len(url) > 500:
        score -= 10
    if len(url) > 1000:
        score -= 10
    if len(parse_qsl(parts.query, keep_blank_values=True)) > 10:
        score -= 10

    return max(0, min(100, score))


class UrlSafetyScanner:
    """Gate destination URLs before a short link is created

    Args:
        monitor (MonitoringCore | None):
            Receives every rejected URL as a flagged link.
        min_trust_score (int):
            Scores below this floor are rejected.
    """

    def __init__(self, monitor=None, min_trust_score: int = 20):
        self.monitor = monitor
        self.min_trust_score = min_trust_score

    def gate(self, url: str, meta: RequestMeta | None = None) -> int:
        """Run the safety checks in order and return the trust score of a passing URL

        Raises:
            SafetyRejectedError:
                With reason `ip_based_url`, `nested_shortener`,
                `dangerous_pattern` or `low_trust_score`.
        """
        if is_ip_literal_host(url):
            self.reject(url, IP_BASED_URL, 'IP-based URLs are not allowed. Please use a domain name.')
        if is_nested_shortener(url):
            self.reject(url, NESTED_SHORTENER, 'Shortening URLs from other URL shorteners is not allowed.')
        if has_dangerous_pattern(url):
            self.reject(url, DANGEROUS_PATTERN, 'This URL has been flagged as potentially unsafe and cannot be shortened.')

        score = trust_score(url)
        if meta is not None:
            meta.trust_score = score
        if score < self.min_trust_score:
            self.reject(url, LOW_TRUST_SCORE, 'This URL has been flagged as potentially unsafe and cannot be shortened.')
        return score

    def reject(self, url: str, reason: str, message: str) -> None:
        """Record a flagged URL and raise SafetyRejectedError"""
        logger.info('Rejected unsafe destination URL.', extra={'event': 'URL_REJECTED', 'reason': reason})
        if self.monitor is not None:
            self.monitor.record_flagged(url, reason)
        raise SafetyRejectedError(message, reason=reason)

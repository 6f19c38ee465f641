"""Client identity helpers for API Gateway proxy events

Functions:
    normalized_headers(event) -> dict
        Lower-cased view of the request headers
    forwarded_chain(headers) -> list[str]
        Hops listed in X-Forwarded-For, left to right
    resolve_client_ip(event) -> str
        Best-known client IP, or 'unknown'
    subnet_of(ip) -> str
        Network bucket used for subnet-wide rate limiting

Example:
    >>> subnet_of('1.2.3.4')
    '1.2.3.0/24'
    >>> subnet_of('::ffff:10.0.0.1')
    '10.0.0.0/24'
    >>> subnet_of('2001:db8:85a3:8d3:1319:8a2e:370:7348')
    '2001:db8:85a3::/48'
    >>> subnet_of(None)
    'unknown'
"""

import re
import ipaddress

from linkguard.types import Headers, LambdaEvent


UNKNOWN = 'unknown'

_IPV4_RE = re.compile(r'^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.\d{1,3}$')
_IPV4_MAPPED_PREFIX = '::ffff:'


def normalized_headers(event: LambdaEvent) -> Headers:
    """API Gateway keeps the client's header casing, so normalize before lookups"""
    headers = event.get('headers') or {}
    return {str(name).lower(): value for name, value in headers.items() if value is not None}


def forwarded_chain(headers: Headers) -> list[str]:
    raw = headers.get('x-forwarded-for') or ''
    return [hop.strip() for hop in raw.split(',') if hop.strip()]


def resolve_client_ip(event: LambdaEvent) -> str:
    """Resolve the client IP of an API Gateway event

    The source IP resolved by API Gateway is trusted first (REST APIs report it
    under `identity`, HTTP APIs under `http`). Without it, the last hop of
    X-Forwarded-For is used since it was appended by the proxy closest to us.
    """
    request_context = event.get('requestContext') or {}
    for section in ('identity', 'http'):
        source_ip = (request_context.get(section) or {}).get('sourceIp')
        if source_ip:
            return source_ip

    chain = forwarded_chain(normalized_headers(event))
    if chain:
        return chain[-1]
    return UNKNOWN


def strip_ipv4_mapping(ip: str) -> str:
    if ip.lower().startswith(_IPV4_MAPPED_PREFIX):
        return ip[len(_IPV4_MAPPED_PREFIX) :]
    return ip


def subnet_of(ip: str | None) -> str:
    """Return the /24 (IPv4) or /48 (IPv6) network of an IP address

    Values that are neither IPv4 nor IPv6 are returned unchanged, so a
    malformed IP still rate limits as its own bucket.
    """
    if not ip:
        return UNKNOWN

    candidate = strip_ipv4_mapping(ip)
    match = _IPV4_RE.match(candidate)
    if match:
        return f'{match.group(1)}.{match.group(2)}.{match.group(3)}.0/24'

    if ':' in ip:
        try:
            return str(ipaddress.IPv6Network(f'{ip}/48', strict=False))
        except ValueError:
            return ip

    return ip

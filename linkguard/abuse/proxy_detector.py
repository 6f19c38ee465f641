"""Proxy, Tor and data-center detection for link creation requests

The verdict only annotates the request; the CAPTCHA decision downstream is the
stage that acts on `proxied`. The one hard rule is the forwarded-hops cap, which
keeps a client from inflating X-Forwarded-For to hide behind a proxy chain.

NOTE: data-center detection matches private and reserved prefixes only. It is a
      heuristic and not a GeoIP/ASN lookup.
"""

import ipaddress
import logging
from dataclasses import dataclass

from linkguard.constants import Limits
from linkguard.exceptions import ProxyHopsExceededError
from linkguard.models import RequestMeta
from linkguard.types import LambdaEvent
from linkguard.abuse.client_identity import (
    forwarded_chain,
    normalized_headers,
    resolve_client_ip,
    strip_ipv4_mapping,
    subnet_of,
)


logger = logging.getLogger(__name__)


PROXY_HEADERS = frozenset(
    {
        'via',
        'x-proxy-id',
        'forwarded',
        'x-tor-exit',
        'x-tor-exit-node',
        'tor-exit-node',
        'x-anonymizer',
        'proxy-connection',
    }
)

# fmt: off
DATA_CENTER_NETWORKS = tuple(
    ipaddress.ip_network(network)
    for network in (
        '10.0.0.0/8',       # RFC1918
        '172.16.0.0/12',    # RFC1918
        '192.168.0.0/16',   # RFC1918
        '100.64.0.0/10',    # carrier-grade NAT
        '127.0.0.0/8',      # loopback
        '169.254.0.0/16',   # link-local
        '::1/128',
        'fc00::/7',         # unique local
        'fe80::/10',        # link-local
    )
)
# fmt: on


@dataclass(frozen=True)
class ProxyVerdict:
    client_ip: str
    proxied: bool
    data_center_ip: bool


def is_data_center_ip(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(strip_ipv4_mapping(ip))
    except ValueError:
        return False
    return any(address in network for network in DATA_CENTER_NETWORKS)


class ProxyDetector:
    """Flag proxied and data-center requests, reject excessive proxy chains."""

    def __init__(self, max_forwarded_hops: int = Limits.MAX_FORWARDED_HOPS):
        self.max_forwarded_hops = max_forwarded_hops

    def inspect(self, event: LambdaEvent, meta: RequestMeta | None = None) -> ProxyVerdict:
        """Inspect an API Gateway event and annotate the request metadata

        Args:
            event (LambdaEvent):
                API Gateway proxy event.
            meta (RequestMeta | None):
                Metadata to annotate with client IP, subnet and proxy flags.

        Returns:
            ProxyVerdict: client IP with its proxy and data-center flags

        Raises:
            ProxyHopsExceededError:
                If X-Forwarded-For lists more hops than allowed.
        """
        headers = normalized_headers(event)
        chain = forwarded_chain(headers)
        client_ip = resolve_client_ip(event)

        if len(chain) > self.max_forwarded_hops:
            logger.warning(
                'Rejected request with too many proxy hops.',
                extra={'event': 'PROXY_HOPS_EXCEEDED', 'clientIp': client_ip, 'hops': len(chain)},
            )
            raise ProxyHopsExceededError('Request blocked: too many proxy hops detected.')

        proxied = bool(chain) or any(headers.get(name) for name in PROXY_HEADERS)
        verdict = ProxyVerdict(
            client_ip=client_ip,
            proxied=proxied,
            data_center_ip=is_data_center_ip(client_ip),
        )

        if meta is not None:
            meta.client_ip = verdict.client_ip
            meta.subnet = subnet_of(verdict.client_ip)
            meta.user_agent = headers.get('user-agent', '')
            meta.proxied = verdict.proxied
            meta.data_center_ip = verdict.data_center_ip
        return verdict

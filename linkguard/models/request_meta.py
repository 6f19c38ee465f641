from dataclasses import dataclass


# fmt: off
@dataclass
class RequestMeta:
    """Abuse-control annotations accumulated while a creation request moves through the pipeline."""

    client_ip: str = 'unknown'
    subnet: str = 'unknown'
    user_agent: str = ''
    proxied: bool = False               # forwarding / anonymizer headers seen
    data_center_ip: bool = False        # client IP inside a private or reserved range
    suspicious_ua: bool = False         # user agent matches a bot / client-library signature
    trust_score: int | None = None      # destination URL trust score, once scanned
# fmt: on

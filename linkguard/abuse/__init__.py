from linkguard.abuse.client_identity import normalized_headers, resolve_client_ip, subnet_of
from linkguard.abuse.proxy_detector import ProxyDetector, ProxyVerdict
from linkguard.abuse.rate_limiter import RateLimiter, is_suspicious_user_agent
from linkguard.abuse.url_safety import UrlSafetyScanner, is_ip_literal_host, is_nested_shortener, has_dangerous_pattern, trust_score
from linkguard.abuse.monitoring import MonitoringCore
from linkguard.abuse.verification import CaptchaVerifier, SafeBrowsingClient, should_challenge


__all__ = [
    'normalized_headers',
    'resolve_client_ip',
    'subnet_of',
    'ProxyDetector',
    'ProxyVerdict',
    'RateLimiter',
    'is_suspicious_user_agent',
    'UrlSafetyScanner',
    'is_ip_literal_host',
    'is_nested_shortener',
    'has_dangerous_pattern',
    'trust_score',
    'MonitoringCore',
    'CaptchaVerifier',
    'SafeBrowsingClient',
    'should_challenge',
]

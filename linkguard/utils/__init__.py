from linkguard.utils.config import app_env, app_name, app_prefix, load_config
from linkguard.utils.helpers import base_url, get_short_url, now_ms, iso_from_ms, require_environment, guarantee_500_response
from linkguard.utils.shortener import generate_shortcode
from linkguard.utils.logging import initialize_logging
from linkguard.utils.settings import AbuseSettings


__all__ = [
    'generate_shortcode',
    'app_env',
    'app_name',
    'app_prefix',
    'load_config',
    'base_url',
    'get_short_url',
    'now_ms',
    'iso_from_ms',
    'require_environment',
    'guarantee_500_response',
    'initialize_logging',
    'AbuseSettings',
]

# Structured log event names
REQUEST_REJECTED = 'SHORTEN_URL_REQUEST_REJECTED'
SHORTCODE_CONFLICT = 'SHORTEN_URL_SHORTCODE_CONFLICT'
INFRASTRUCTURE_ERROR = 'SHORTEN_URL_INFRASTRUCTURE_ERROR'

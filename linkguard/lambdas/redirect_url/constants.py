# Structured log event names
LINK_NOT_FOUND = 'REDIRECT_URL_LINK_NOT_FOUND'
LINK_EXPIRED = 'REDIRECT_URL_LINK_EXPIRED'
INFRASTRUCTURE_ERROR = 'REDIRECT_URL_INFRASTRUCTURE_ERROR'

# Structured log event names
LINK_NOT_FOUND = 'TRACK_URL_LINK_NOT_FOUND'
INFRASTRUCTURE_ERROR = 'TRACK_URL_INFRASTRUCTURE_ERROR'

# Structured log event names
ROUTE_NOT_FOUND = 'GATEWAY_ROUTE_NOT_FOUND'

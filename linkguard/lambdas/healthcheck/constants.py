HEALTHY = 'healthy'
DEGRADED = 'degraded'

# Structured log event names
STORE_UNREACHABLE = 'HEALTHCHECK_STORE_UNREACHABLE'

SECRET_HEADER = 'x-monitoring-secret'  # noqa: S105

# Structured log event names
UNAUTHORIZED = 'MONITORING_DASHBOARD_UNAUTHORIZED'
NOT_CONFIGURED = 'MONITORING_DASHBOARD_NOT_CONFIGURED'
CONFIGURATION_ERROR = 'MONITORING_DASHBOARD_CONFIGURATION_ERROR'

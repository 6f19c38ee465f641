import os
import hmac
import logging

from linkguard.constants import ENV
from linkguard.types import LambdaEvent, LambdaContext, LambdaResponse
from linkguard.abuse.client_identity import normalized_headers, resolve_client_ip
from linkguard.services.runtime import get_runtime
from linkguard.exceptions import LinkGuardError
from linkguard.utils import load_config, guarantee_500_response, AbuseSettings
from linkguard.utils.responses import json_response, error_response
from linkguard.lambdas.monitoring_dashboard.constants import SECRET_HEADER, UNAUTHORIZED, NOT_CONFIGURED, CONFIGURATION_ERROR


logger = logging.getLogger(__name__)


def authorized(event: LambdaEvent) -> bool:
    """Compare the X-Monitoring-Secret header with MONITORING_SECRET in constant time"""
    expected = os.environ.get(ENV.Monitoring.SECRET)
    if not expected:
        logger.warning('Monitoring dashboard requested but no secret is configured.', extra={'event': NOT_CONFIGURED})
        return False
    provided = normalized_headers(event).get(SECRET_HEADER) or ''
    return hmac.compare_digest(provided.encode('utf-8'), expected.encode('utf-8'))


@guarantee_500_response
def lambda_handler(event: LambdaEvent, context: LambdaContext) -> LambdaResponse:
    """Handle `GET /monitoring/dashboard` requests

    The snapshot reflects the in-memory monitoring state of this container only,
    so it is meaningful when the dashboard shares its container with the other
    routes (see `linkguard.lambdas.gateway`).

    HTTP responses:
        200: Monitoring snapshot (see MonitoringCore.dashboard_snapshot)
        401: Missing or wrong X-Monitoring-Secret header
        500: Internal server error
    """
    # 1- Authorize
    if not authorized(event):
        logger.warning('Unauthorized monitoring dashboard request.', extra={'event': UNAUTHORIZED, 'clientIp': resolve_client_ip(event)})
        return json_response(401, {'error': 'Unauthorized'})

    # 2- Attach to the process runtime with this deployment's abuse thresholds
    try:
        app_config = load_config('monitoring_dashboard')
        runtime = get_runtime(AbuseSettings.from_config(app_config.get('abuse')))
    except LinkGuardError as error:
        logger.exception(
            'Failed to load monitoring dashboard configuration.',
            extra={'event': CONFIGURATION_ERROR, 'error': error.__class__.__name__},
        )
        return error_response(error)

    # 3- Snapshot
    return json_response(200, runtime.monitor.dashboard_snapshot())

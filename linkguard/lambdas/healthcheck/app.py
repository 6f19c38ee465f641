import logging

from linkguard.types import LambdaEvent, LambdaContext, LambdaResponse
from linkguard.dao.redis import LinkRedisDAO
from linkguard.utils import load_config, app_prefix, guarantee_500_response, iso_from_ms, now_ms
from linkguard.utils.responses import json_response
from linkguard.lambdas.healthcheck.constants import HEALTHY, DEGRADED, STORE_UNREACHABLE


logger = logging.getLogger(__name__)


@guarantee_500_response
def lambda_handler(event: LambdaEvent, context: LambdaContext) -> LambdaResponse:
    """Handle `GET /health` requests

    HTTP responses:
        200: {"status": "healthy", "storeConnected": true, "timestamp": ...}
        503: {"status": "degraded", "storeConnected": false, "timestamp": ...}
    """
    app_config = load_config('healthcheck')
    redis_config = {f'redis_{k}': v for k, v in app_config['redis'].items()}

    dao = LinkRedisDAO(**redis_config, prefix=app_prefix(), healthcheck=False)
    connected = dao.ping()
    if not connected:
        logger.warning('Redis is unreachable.', extra={'event': STORE_UNREACHABLE})

    return json_response(
        200 if connected else 503,
        {
            'status': HEALTHY if connected else DEGRADED,
            'storeConnected': connected,
            'timestamp': iso_from_ms(now_ms()),
        },
    )

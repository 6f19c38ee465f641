"""Single-function entry point for every HTTP route

Deploying all routes behind one function keeps the rate limiter, monitoring
counters, kill switch and redirect cache in the same container, so the abuse
state seen by `POST /shorten` is the state reported by the dashboard.

Routes are matched on the API Gateway resource template, from either a REST API
event (`httpMethod` + `resource`) or an HTTP API event (`routeKey`).
"""

import logging

from linkguard.types import LambdaEvent, LambdaContext, LambdaResponse
from linkguard.abuse.client_identity import resolve_client_ip
from linkguard.lambdas.healthcheck import app as healthcheck
from linkguard.lambdas.monitoring_dashboard import app as monitoring_dashboard
from linkguard.lambdas.redirect_url import app as redirect_url
from linkguard.lambdas.shorten_url import app as shorten_url
from linkguard.lambdas.track_url import app as track_url
from linkguard.utils import guarantee_500_response
from linkguard.utils.responses import CORS_HEADERS, json_response
from linkguard.lambdas.gateway.constants import ROUTE_NOT_FOUND


logger = logging.getLogger(__name__)


ROUTES = {
    ('POST', '/shorten'): shorten_url,
    ('GET', '/health'): healthcheck,
    ('GET', '/monitoring/dashboard'): monitoring_dashboard,
    ('GET', '/track/{shortcode}'): track_url,
    ('GET', '/{shortcode}'): redirect_url,
}


def route_key(event: LambdaEvent) -> tuple[str, str]:
    """Return the (method, resource template) pair of an API Gateway event

    Example:
        >>> route_key({'httpMethod': 'GET', 'resource': '/track/{shortcode}'})
        ('GET', '/track/{shortcode}')
        >>> route_key({'routeKey': 'POST /shorten'})
        ('POST', '/shorten')
    """
    key = event.get('routeKey')
    if key and key != '$default':
        method, _, resource = key.partition(' ')
        return method.upper(), resource

    method = event.get('httpMethod') or ((event.get('requestContext') or {}).get('http') or {}).get('method') or ''
    return method.upper(), event.get('resource') or ''


@guarantee_500_response
def lambda_handler(event: LambdaEvent, context: LambdaContext) -> LambdaResponse:
    """Dispatch an API Gateway event to the handler of its route

    HTTP responses:
        204: CORS preflight (OPTIONS on any route)
        404: No route matches the method and resource
        otherwise: whatever the matched route responds
    """
    method, resource = route_key(event)
    if method == 'OPTIONS':
        return {'statusCode': 204, 'headers': dict(CORS_HEADERS), 'body': ''}

    route = ROUTES.get((method, resource))
    if route is None:
        logger.info(
            'No route for request.',
            extra={'event': ROUTE_NOT_FOUND, 'method': method, 'resource': resource, 'clientIp': resolve_client_ip(event)},
        )
        return json_response(404, {'error': 'Not found'})

    return route.lambda_handler(event, context)

import logging

from linkguard.types import LambdaEvent, LambdaContext, LambdaResponse
from linkguard.dao.redis import LinkRedisDAO
from linkguard.dao.exceptions import LinkNotFoundError
from linkguard.exceptions import LinkGuardError
from linkguard.services.redirect_resolver import is_valid_shortcode
from linkguard.utils import load_config, app_prefix, guarantee_500_response, iso_from_ms
from linkguard.utils.responses import json_response, error_response
from linkguard.lambdas.track_url.constants import LINK_NOT_FOUND, INFRASTRUCTURE_ERROR


logger = logging.getLogger(__name__)


@guarantee_500_response
def lambda_handler(event: LambdaEvent, context: LambdaContext) -> LambdaResponse:
    """Handle `GET /track/{shortcode}` requests

    Reads the record and its click counter in one Redis pipeline. Expired links
    are still reported, as long as Redis hasn't evicted them yet.

    HTTP responses:
        200: Link statistics
            originalUrl, shortCode, clicks, createdAt, expiresAt (ISO-8601 or null)
        404: Unknown or malformed shortcode
        503: Redis unavailable
        500: Internal server error
    """
    shortcode = (event.get('pathParameters') or {}).get('shortcode') or ''
    if not is_valid_shortcode(shortcode):
        return error_response(LinkNotFoundError(), message='Link not found')

    try:
        app_config = load_config('track_url')
        redis_config = {f'redis_{k}': v for k, v in app_config['redis'].items()}

        dao = LinkRedisDAO(**redis_config, prefix=app_prefix())
        record, clicks = dao.track(shortcode)
    except LinkNotFoundError as error:
        logger.info('Short link not found.', extra={'event': LINK_NOT_FOUND, 'shortcode': shortcode})
        return error_response(error, message='Link not found')
    except LinkGuardError as error:
        logger.exception(
            'Failed to load short link statistics.',
            extra={'event': INFRASTRUCTURE_ERROR, 'shortcode': shortcode, 'error': error.__class__.__name__},
        )
        return error_response(error)

    return json_response(
        200,
        {
            'originalUrl': record.url,
            'shortCode': shortcode,
            'clicks': clicks,
            'createdAt': iso_from_ms(int(record.created_at.timestamp() * 1000)),
            'expiresAt': iso_from_ms(record.expires_at_ms),
        },
    )

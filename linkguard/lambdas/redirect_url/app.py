import logging

from linkguard.types import LambdaEvent, LambdaContext, LambdaResponse
from linkguard.dao.redis import LinkRedisDAO
from linkguard.dao.exceptions import LinkNotFoundError
from linkguard.exceptions import LinkGuardError, LinkExpiredError
from linkguard.services.runtime import get_runtime
from linkguard.services.redirect_resolver import redirect_headers
from linkguard.utils import load_config, app_prefix, guarantee_500_response, AbuseSettings
from linkguard.utils.responses import error_response, redirect_response
from linkguard.lambdas.redirect_url.constants import LINK_NOT_FOUND, LINK_EXPIRED, INFRASTRUCTURE_ERROR


logger = logging.getLogger(__name__)


@guarantee_500_response
def lambda_handler(event: LambdaEvent, context: LambdaContext) -> LambdaResponse:
    """Handle `GET /{shortcode}` requests

    This Lambda handler follows this procedure to redirect users:
    - Step 1: Extract the shortcode from the path parameters
    - Step 2: Load AppConfig and attach to the process runtime
    - Step 3: Resolve the shortcode (in-process cache, then Redis)
    - Step 4: Account the click (monitoring + asynchronous Redis counter)
    - Step 5: Respond with the redirect

    HTTP responses:
        301 / 302 / 308: Redirect to the original URL
            Location header, Cache-Control: 'public, max-age=3600' (301/308) or 'no-store' (302)
        404: Unknown, malformed or disabled shortcode
        410: Link expired
        503: Redis unavailable (never reported as 404)
        500: Internal server error
    """
    # 1- Extract shortcode from path parameters
    shortcode = (event.get('pathParameters') or {}).get('shortcode') or ''

    try:
        # 2- Load application config, attach to process runtime
        app_config = load_config('redirect_url')
        redis_config = {f'redis_{k}': v for k, v in app_config['redis'].items()}
        runtime = get_runtime(AbuseSettings.from_config(app_config.get('abuse')))

        # 3- Resolve (no Redis round trip on a cache hit, so skip the connection healthcheck)
        dao = LinkRedisDAO(**redis_config, prefix=app_prefix(), healthcheck=False)
        resolver = runtime.resolver(dao)
        record = resolver.resolve(shortcode)
    except LinkNotFoundError as error:
        logger.info('Short link not found.', extra={'event': LINK_NOT_FOUND, 'shortcode': shortcode})
        return error_response(error, message='Link not found')
    except LinkExpiredError as error:
        logger.info('Short link expired.', extra={'event': LINK_EXPIRED, 'shortcode': shortcode})
        return error_response(error, message='Link has expired')
    except LinkGuardError as error:
        logger.exception(
            'Failed to resolve short link.',
            extra={'event': INFRASTRUCTURE_ERROR, 'shortcode': shortcode, 'error': error.__class__.__name__},
        )
        return error_response(error)

    # 4- Account the click without delaying the response
    resolver.record_hit(shortcode)

    # 5- Redirect
    return redirect_response(int(record.redirect_status), redirect_headers(record))

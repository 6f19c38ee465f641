import logging

from linkguard.types import LambdaEvent, LambdaContext, LambdaResponse
from linkguard.dao.redis import LinkRedisDAO
from linkguard.dao.exceptions import LinkAlreadyExistsError
from linkguard.exceptions import LinkGuardError, AdmissionDeniedError
from linkguard.services.runtime import get_runtime
from linkguard.utils import load_config, app_prefix, guarantee_500_response, AbuseSettings
from linkguard.utils.responses import json_response, error_response
from linkguard.lambdas.shorten_url.constants import REQUEST_REJECTED, SHORTCODE_CONFLICT, INFRASTRUCTURE_ERROR


logger = logging.getLogger(__name__)


@guarantee_500_response
def lambda_handler(event: LambdaEvent, context: LambdaContext) -> LambdaResponse:
    """Handle `POST /shorten` requests

    This Lambda handler follows this procedure to shorten URLs:
    - Step 1: Load AppConfig (Redis connection, abuse thresholds)
    - Step 2: Attach to the process runtime (rate limiter, monitoring, cache)
    - Step 3: Run the creation pipeline (kill switch, proxy detection, rate
              limiting, validation, URL safety, CAPTCHA, atomic write)
    - Step 4: Respond with the new short link

    HTTP responses:
        200: Link created
            shortCode, shortUrl, originalUrl, expiresAt (ISO-8601 or null)
        400: Invalid request or unsafe destination URL
        403: Too many proxy hops, or CAPTCHA required / failed (captchaRequired: true)
        409: Custom shortcode already exists
        429: Rate limited or under backoff block (Retry-After header)
        503: Kill switch active (Retry-After header) or Redis unavailable
        500: Internal server error

    Example:
        >>> event = {'body': '{"originalUrl": "https://example.com/article"}', 'requestContext': {...}}
        >>> response = lambda_handler(event, None)
        >>> response['statusCode']
        200
        >>> json.loads(response['body'])['shortCode']
        'Xb3kPq1'
    """
    try:
        # 1- Load application config
        app_config = load_config('shorten_url')
        redis_config = {f'redis_{k}': v for k, v in app_config['redis'].items()}

        # 2- Attach to process-wide abuse state
        runtime = get_runtime(AbuseSettings.from_config(app_config.get('abuse')))

        # 3- Run the creation pipeline (the kill switch and rate limits need no Redis round trip)
        dao = LinkRedisDAO(**redis_config, prefix=app_prefix(), healthcheck=False)
        created = runtime.creator(dao).create(event)
    except LinkAlreadyExistsError as error:
        logger.info('Shortcode already exists.', extra={'event': SHORTCODE_CONFLICT})
        return error_response(error)
    except LinkGuardError as error:
        if error.status_code >= 500 and not isinstance(error, AdmissionDeniedError):
            logger.exception(
                'Failed to shorten URL.',
                extra={'event': INFRASTRUCTURE_ERROR, 'error': error.__class__.__name__},
            )
        else:
            logger.info(
                'Rejected link creation request.',
                extra={'event': REQUEST_REJECTED, 'error': error.__class__.__name__, 'errorCode': error.error_code},
            )
        return error_response(error)

    # 4- Respond with the new short link
    return json_response(200, created.to_dict())

"""API Gateway (Lambda proxy) response builders

Functions:
    json_response(status_code, body, headers=None) -> dict
        JSON response with CORS headers.
    error_response(error) -> dict
        JSON error response derived from a LinkGuardError (status, errorCode, Retry-After).
    redirect_response(status_code, headers) -> dict
        Empty-bodied redirect response.
"""

import json
from http import HTTPStatus
from typing import Any

from linkguard.exceptions import LinkGuardError, AdmissionDeniedError, CaptchaRequiredError, CaptchaFailedError
from linkguard.types import Headers, LambdaResponse


# TODO: restrict the allowed origin once the frontend has a fixed domain
CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type,X-Captcha-Token',
    'Access-Control-Allow-Methods': 'OPTIONS,POST,GET',
}


def json_response(status_code: int, body: dict[str, Any], headers: Headers | None = None) -> LambdaResponse:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json', **CORS_HEADERS, **(headers or {})},
        'body': json.dumps(body),
    }


def error_response(error: LinkGuardError, message: str | None = None) -> LambdaResponse:
    """Build the JSON error response for an application error.

    Admission errors carrying `retry_after` get a `Retry-After` header, CAPTCHA
    errors flag `captchaRequired` so the frontend can render the challenge.

    Example:
        >>> error_response(RateLimitedError('Too many requests.', retry_after=42))
        {'statusCode': 429, 'headers': {..., 'Retry-After': '42'}, 'body': '{"error": ...}'}
    """
    if message is None and error.status_code >= 500 and not isinstance(error, AdmissionDeniedError):
        # Infrastructure details (hosts, config keys) stay in the logs
        message = HTTPStatus(error.status_code).phrase
    body = {'error': message or str(error) or error.__class__.__name__, 'errorCode': error.error_code}
    headers = {}
    if isinstance(error, AdmissionDeniedError) and error.retry_after is not None:
        headers['Retry-After'] = str(error.retry_after)
    if isinstance(error, (CaptchaRequiredError, CaptchaFailedError)):
        body['captchaRequired'] = True
    return json_response(error.status_code, body, headers)


def redirect_response(status_code: int, headers: Headers) -> LambdaResponse:
    return {
        'statusCode': status_code,
        'headers': {**CORS_HEADERS, **headers},
        'body': '',
    }

"""
Auth failure classification for WordPress REST responses.
Decides whether a failed call is worth a token renewal and retry.
"""
import logging
from typing import Optional, Union

import requests

logger = logging.getLogger(__name__)


# 403 keywords that point at the token itself (JWT plugin and core REST codes
# returned when a token silently fails to authenticate the user).
FORBIDDEN_TOKEN_KEYWORDS = (
    'jwt_auth_invalid_token',
    'jwt_auth_expired',
    'jwt_auth_bad_auth_header',
    'token_expired',
    'expired',
    'invalid_token',
    'rest_forbidden',
    'rest_cannot_create',
    'rest_cannot_edit',
)

# status -> keywords required in message/code; None means any body qualifies
AUTH_FAILURE_RULES = {
    401: None,
    403: FORBIDDEN_TOKEN_KEYWORDS,
}


def _body_fields(body: Union[dict, str, None]) -> tuple:
    """Pull (message, code) out of a decoded JSON body or raw text."""
    if body is None:
        return '', ''
    if isinstance(body, dict):
        message = body.get('message') or ''
        code = body.get('code') or ''
        return str(message), str(code)
    return str(body), ''


def is_auth_failure(status_code: Optional[int], body: Union[dict, str, None] = None) -> bool:
    """
    Classify an HTTP failure as an expired/invalid credential.

    Args:
        status_code: HTTP status of the failed call (None for transport errors)
        body: Decoded JSON body with 'message'/'code', raw body text, or None

    Returns:
        True when renewing the token may fix the call, False otherwise
    """
    if status_code not in AUTH_FAILURE_RULES:
        return False

    keywords = AUTH_FAILURE_RULES[status_code]
    if keywords is None:
        return True

    message, code = _body_fields(body)
    haystack = f"{message.lower()} {code.lower()}"
    matched = next((kw for kw in keywords if kw in haystack), None)

    if matched:
        logger.debug(f"HTTP {status_code} matched auth failure keyword '{matched}'")
        return True

    logger.debug(f"HTTP {status_code} is not a token problem: {message[:100]!r} code={code!r}")
    return False


def response_body(response: requests.Response) -> Union[dict, str]:
    """Decode a response body as JSON, falling back to text."""
    try:
        data = response.json()
    except ValueError:
        return response.text or ''
    return data if isinstance(data, dict) else response.text or ''


def is_auth_failure_response(response: requests.Response) -> bool:
    """Apply is_auth_failure to a requests.Response."""
    if response.status_code not in AUTH_FAILURE_RULES:
        return False
    return is_auth_failure(response.status_code, response_body(response))

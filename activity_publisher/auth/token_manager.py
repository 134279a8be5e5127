"""
WordPress JWT lifecycle manager.

Keeps the bearer token in process memory, renews it against the JWT plugin
endpoints before it expires, and retries a protected call once with a fresh
token when WordPress rejects the current one.

Usage:
    manager = AuthTokenManager(RenewalCredentials.from_env())

    # Preferred: the wrapper handles renewal and the single retry
    response = manager.request_with_auth('POST', url, json=payload)

    # Only a token
    token = manager.get_valid_token()
"""
import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

import requests

from activity_publisher.auth.failures import is_auth_failure_response, response_body

logger = logging.getLogger(__name__)

# Renew when less than an hour is left on the cached token
RENEWAL_THRESHOLD_SECONDS = 60 * 60

# WordPress issues 7-day tokens; record 6 so renewal happens before real expiry
TOKEN_VALIDITY_SECONDS = 6 * 24 * 60 * 60

PRIMARY_AUTH_PATH = '/wp-json/jwt-auth/v1/token'
FALLBACK_AUTH_PATH = '/wp-json/simple-jwt-login/v1/auth'

AUTH_TIMEOUT_SECONDS = 10
REQUEST_TIMEOUT_SECONDS = 60


class AuthError(Exception):
    """Base class for token manager failures."""
    pass


class ConfigurationError(AuthError):
    """Raised when WP_URL or the renewal credentials are missing."""
    pass


class RenewalError(AuthError):
    """Raised when no authentication endpoint issued a token."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(f"JWT renewal failed (status={status or 'N/A'}): {message}")


def _env(name: str) -> str:
    return (os.getenv(name) or '').strip()


@dataclass(frozen=True)
class RenewalCredentials:
    """Settings needed to obtain a WordPress JWT."""

    base_url: str = ''
    username: str = ''
    password: str = ''
    static_token: str = ''

    @classmethod
    def from_env(cls) -> 'RenewalCredentials':
        """Read WP_URL, WP_USERNAME, WP_PASSWORD and WP_JWT from the environment."""
        return cls(
            base_url=_env('WP_URL').rstrip('/'),
            username=_env('WP_USERNAME'),
            password=_env('WP_PASSWORD'),
            static_token=_env('WP_JWT'),
        )

    @property
    def can_renew(self) -> bool:
        return bool(self.username and self.password)

    @property
    def masked_username(self) -> str:
        return f"{self.username[:3]}***" if self.username else 'NOT SET'


class CachedCredential:
    """
    Token and expiry held as a single (token, expires_at) pair.
    Both values are replaced in one assignment so readers never see a mix.
    """

    def __init__(self):
        self._value: Tuple[Optional[str], Optional[float]] = (None, None)

    def store(self, token: str, expires_at: float) -> None:
        self._value = (token, expires_at)

    def clear(self) -> None:
        self._value = (None, None)

    def snapshot(self) -> Tuple[Optional[str], Optional[float]]:
        return self._value


class AuthTokenManager:
    """
    Owns one cached WordPress JWT and every renewal of it.

    Args:
        credentials: Base URL, username/password and optional static token
        session: requests.Session used for renewal and protected calls
        clock: Returns the current epoch time in seconds
        renewal_threshold: Seconds before expiry at which renewal kicks in
        token_validity: Seconds recorded as the lifetime of a renewed token
        fallback_to_stale_token: When renewal of a soon-to-expire token fails,
            return the cached token instead of raising
    """

    def __init__(
        self,
        credentials: RenewalCredentials,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
        renewal_threshold: int = RENEWAL_THRESHOLD_SECONDS,
        token_validity: int = TOKEN_VALIDITY_SECONDS,
        fallback_to_stale_token: bool = True,
    ):
        self.credentials = credentials
        self.session = session or requests.Session()
        self.renewal_threshold = renewal_threshold
        self.token_validity = token_validity
        self.fallback_to_stale_token = fallback_to_stale_token
        self._clock = clock
        self._cache = CachedCredential()
        self._renew_lock = threading.Lock()
        self._renewals = 0

    # ---------- Cache state ----------
    def _needs_renewal(self, expires_at: float) -> bool:
        return self._clock() >= expires_at - self.renewal_threshold

    def clear_cache(self) -> None:
        """Drop the cached token. Safe to call when the cache is already empty."""
        self._cache.clear()
        logger.info("JWT cache cleared")

    def get_status(self) -> dict:
        """
        Snapshot of the cached token state.

        Returns:
            Dictionary with:
            - has_cached_token: Whether a token is cached
            - expires_at: ISO-8601 UTC expiry, or None
            - needs_renewal_soon: Whether the next read will renew
            - time_remaining: Seconds until expiry, or None
        """
        token, expires_at = self._cache.snapshot()
        if token is None:
            return {
                'has_cached_token': False,
                'expires_at': None,
                'needs_renewal_soon': False,
                'time_remaining': None,
            }

        return {
            'has_cached_token': True,
            'expires_at': datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat(),
            'needs_renewal_soon': self._needs_renewal(expires_at),
            'time_remaining': expires_at - self._clock(),
        }

    # ---------- Renewal ----------
    def renew_token(self) -> str:
        """
        Exchange the configured username/password for a new JWT and cache it.

        Concurrent callers queue on a lock; a caller that waited while another
        thread renewed gets that token instead of issuing a second exchange.

        Returns:
            The new token

        Raises:
            ConfigurationError: If WP_URL or WP_USERNAME/WP_PASSWORD are missing
            RenewalError: If neither authentication endpoint issued a token
        """
        return self._renew(self._renewals)

    def _renew(self, observed: int) -> str:
        # observed: renewal count seen before the caller last read the cache
        with self._renew_lock:
            cached_token, _ = self._cache.snapshot()
            if self._renewals != observed and cached_token is not None:
                logger.info("Using JWT renewed by a concurrent request")
                return cached_token

            token = self._exchange_credentials()
            expires_at = self._clock() + self.token_validity
            self._cache.store(token, expires_at)
            self._renewals += 1

        expires_label = datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat()
        logger.info(f"JWT renewed, cached until {expires_label}")
        return token

    def _exchange_credentials(self) -> str:
        creds = self.credentials
        if not creds.base_url:
            raise ConfigurationError("WP_URL is not configured")
        if not creds.can_renew:
            logger.warning("WP_USERNAME/WP_PASSWORD not set; the JWT cannot be renewed automatically")
            raise ConfigurationError("Renewal credentials are not available (WP_USERNAME/WP_PASSWORD)")

        payload = {'username': creds.username, 'password': creds.password}
        logger.info(f"Renewing JWT for {creds.masked_username} at {creds.base_url}{PRIMARY_AUTH_PATH}")

        response = self._post_credentials(PRIMARY_AUTH_PATH, payload)
        if response.status_code == 404:
            # Sites without the jwt-auth plugin expose simple-jwt-login instead
            logger.info(f"{PRIMARY_AUTH_PATH} not found, trying {FALLBACK_AUTH_PATH}")
            response = self._post_credentials(FALLBACK_AUTH_PATH, payload)
            return self._extract_token(response, 'jwt')

        return self._extract_token(response, 'token')

    def _post_credentials(self, path: str, payload: dict) -> requests.Response:
        url = f"{self.credentials.base_url}{path}"
        try:
            return self.session.post(
                url,
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=AUTH_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Credential exchange with {url} failed: {e}")
            raise RenewalError(None, str(e)) from e

    def _extract_token(self, response: requests.Response, field: str) -> str:
        body = response_body(response)

        if not 200 <= response.status_code < 300:
            message = body.get('message') if isinstance(body, dict) else body
            message = str(message or response.reason or 'empty response')[:300]
            logger.error(f"JWT renewal rejected: HTTP {response.status_code} - {message}")
            if response.status_code == 403:
                logger.error(
                    f"Check WP_USERNAME ({self.credentials.masked_username}) and WP_PASSWORD; "
                    "surrounding whitespace is trimmed"
                )
            raise RenewalError(response.status_code, message)

        token = None
        if isinstance(body, dict):
            token = body.get(field)
            if not token and isinstance(body.get('data'), dict):
                token = body['data'].get(field)

        if not token:
            logger.error(f"JWT renewal response has no '{field}' field")
            raise RenewalError(response.status_code, f"Response did not contain '{field}'")

        return token

    # ---------- Token access ----------
    def get_valid_token(self, force_renewal: bool = False) -> str:
        """
        Return a token for the next protected call, renewing when needed.

        Args:
            force_renewal: Renew even if the cached token is still fresh

        Returns:
            Token string. May be the static WP_JWT (possibly empty) when
            renewal is unavailable, or a stale cached token when renewal fails.

        Raises:
            AuthError: Only when a forced renewal fails and no static token exists,
                or when a stale-token renewal fails with fallback_to_stale_token off
        """
        static_token = self.credentials.static_token
        generation = self._renewals

        if force_renewal:
            logger.info("Forcing JWT renewal")
            try:
                return self._renew(generation)
            except AuthError as e:
                if not static_token:
                    raise
                logger.warning(f"Forced renewal failed ({e}); falling back to WP_JWT")
                return static_token

        token, expires_at = self._cache.snapshot()

        if token is not None:
            if not self._needs_renewal(expires_at):
                hours_left = (expires_at - self._clock()) / 3600
                logger.debug(f"Using cached JWT ({hours_left:.1f}h left)")
                return token

            logger.info("Cached JWT is close to expiry, renewing")
            try:
                return self._renew(generation)
            except AuthError as e:
                if not self.fallback_to_stale_token:
                    raise
                logger.warning(f"Renewal failed ({e}); keeping the cached JWT until it is rejected")
                return token

        if self.credentials.can_renew:
            logger.info("No cached JWT, requesting a fresh one")
            try:
                return self._renew(generation)
            except AuthError as e:
                logger.warning(f"Could not obtain a fresh JWT ({e}); falling back to WP_JWT")
                return static_token

        logger.info("No cached JWT and no renewal credentials; using WP_JWT")
        return static_token

    # ---------- Protected calls ----------
    def _send(self, method: str, url: str, token: str, request_kwargs: dict) -> requests.Response:
        headers = dict(request_kwargs.get('headers') or {})
        headers['Authorization'] = f'Bearer {token}'
        headers['X-Authorization'] = f'Bearer {token}'

        kwargs = {**request_kwargs, 'headers': headers}
        kwargs.setdefault('timeout', REQUEST_TIMEOUT_SECONDS)
        return self.session.request(method, url, **kwargs)

    def request_with_auth(self, method: str, url: str, **request_kwargs) -> requests.Response:
        """
        Perform a WordPress call with the JWT attached, retrying once on auth failure.

        Request bodies must be re-sendable (bytes, dicts, JSON) because the
        retry sends them again.

        Args:
            method: HTTP method
            url: Full URL of the protected endpoint
            **request_kwargs: Passed to requests (headers, json, data, files, params, timeout)

        Returns:
            The response of the last attempt, whatever its status. Business
            errors are not interpreted here.

        Raises:
            requests.RequestException: Transport failures, never retried
            AuthError: If the forced renewal for the retry fails with no WP_JWT fallback
        """
        response = self._send(method, url, self.get_valid_token(), request_kwargs)
        if not is_auth_failure_response(response):
            return response

        logger.warning(
            f"{method} {url} rejected with HTTP {response.status_code}; "
            "renewing JWT and retrying once"
        )
        self.clear_cache()

        response = self._send(method, url, self.get_valid_token(force_renewal=True), request_kwargs)
        if is_auth_failure_response(response):
            logger.error(f"{method} {url} still rejected with HTTP {response.status_code} after renewal")
        else:
            logger.info(f"{method} {url} succeeded after JWT renewal (HTTP {response.status_code})")
        return response

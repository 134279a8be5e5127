"""
WordPress authentication package.
"""
from activity_publisher.auth.failures import (
    is_auth_failure,
    is_auth_failure_response,
)
from activity_publisher.auth.token_manager import (
    AuthTokenManager,
    RenewalCredentials,
    AuthError,
    ConfigurationError,
    RenewalError,
)

__all__ = [
    'AuthTokenManager',
    'RenewalCredentials',
    'AuthError',
    'ConfigurationError',
    'RenewalError',
    'is_auth_failure',
    'is_auth_failure_response',
]

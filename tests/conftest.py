"""
Shared fixtures for the activity publisher tests.
"""
import sys
from pathlib import Path

import pytest
import responses

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from activity_publisher.auth import AuthTokenManager, RenewalCredentials
from activity_publisher.auth.token_manager import FALLBACK_AUTH_PATH, PRIMARY_AUTH_PATH

WP_URL = 'https://wp.example.com'
PRIMARY_URL = f"{WP_URL}{PRIMARY_AUTH_PATH}"
FALLBACK_URL = f"{WP_URL}{FALLBACK_AUTH_PATH}"
POSTS_URL = f"{WP_URL}/wp-json/wp/v2/planessemanales"


class FakeClock:
    """Controllable epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def credentials():
    return RenewalCredentials(base_url=WP_URL, username='editor', password='s3cret')


@pytest.fixture
def manager(credentials, clock):
    """Token manager with renewal credentials and a fake clock."""
    return AuthTokenManager(credentials, clock=clock)


@pytest.fixture
def mocked_responses():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps

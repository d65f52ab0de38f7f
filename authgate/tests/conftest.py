"""
Shared test fixtures for authgate
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from authgate.api.main import create_app
from authgate.api.services import build_services
from authgate.core.auth.delegated import GOOGLE_TOKEN_URL, GOOGLE_USERINFO_URL
from authgate.core.config import Settings


TEST_SESSION_SECRET = "test-session-secret-0123456789abcdef"
TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef-xyz"
TEST_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
TEST_CLIENT_SECRET = "test-client-secret"
TEST_REDIRECT_URL = "http://testserver/auth/callback"


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """
    Stand-in for Google's token and userinfo endpoints.

    Records every request; set `error` to make every call raise, or change
    the status/body attributes to shape the responses.
    """

    def __init__(self):
        self.requests = []
        self.error = None
        self.token_status = 200
        self.token_body = {"access_token": "provider-access-token", "token_type": "Bearer", "expires_in": 3599}
        self.userinfo_status = 200
        self.userinfo_body = {"id": "1234567890", "email": "ada@example.com", "name": "Ada Lovelace"}

    @staticmethod
    def _response(status_code, body) -> httpx.Response:
        if isinstance(body, (dict, list)):
            return httpx.Response(status_code, json=body)
        return httpx.Response(status_code, text=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if str(request.url) == GOOGLE_TOKEN_URL:
            return self._response(self.token_status, self.token_body)
        if str(request.url) == GOOGLE_USERINFO_URL:
            return self._response(self.userinfo_status, self.userinfo_body)
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def exchange_attempted(self) -> bool:
        return any(str(request.url) == GOOGLE_TOKEN_URL for request in self.requests)


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment's .env file."""
    values = {
        "session_secret": TEST_SESSION_SECRET,
        "jwt_secret": TEST_JWT_SECRET,
        "valid_api_keys": "12345,abcdef",
        "google_client_id": TEST_CLIENT_ID,
        "google_client_secret": TEST_CLIENT_SECRET,
        "google_redirect_url": TEST_REDIRECT_URL,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def services(settings, fake_provider):
    return build_services(settings, oauth_transport=fake_provider.transport)


def _client(services, settings, server) -> TestClient:
    return TestClient(create_app(settings=settings, services=services, server=server))


@pytest.fixture
def session_client(services, settings):
    with _client(services, settings, "session") as client:
        yield client


@pytest.fixture
def token_client(services, settings):
    with _client(services, settings, "token") as client:
        yield client


@pytest.fixture
def api_key_client(services, settings):
    with _client(services, settings, "api_key") as client:
        yield client


@pytest.fixture
def delegated_client(services, settings):
    with _client(services, settings, "delegated") as client:
        yield client

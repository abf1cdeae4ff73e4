"""
Shared fixtures: a small provider registry, an in-memory store and a scripted exchange service.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from sso_gateway.core.encryption import PayloadEncryption
from sso_gateway.core.oauth import OAuthUrlBuilder, ProviderConfig, ProviderRegistry, TokenExchangeService
from sso_gateway.core.security import hash_logout_token
from sso_gateway.core.session import MemorySessionStore, Session, TokenRecord, utc_now
from sso_gateway.core.settings import Settings
from sso_gateway.gateway import build_gateway
from sso_gateway.main import create_app
from sso_gateway.services import AuthSessionService

CLIENT_ID = "client-1"
CLIENT_SECRET = "test-secret"
OAUTH_HOST = "https://oauth.example.com"
APP_HOST = "https://app.example.com"
LOGOUT_SECRET = "logout-secret"
ERROR_REDIRECT = "/error"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_token(
    access_token: str = "access-1",
    *,
    expires_in: Optional[timedelta] = timedelta(hours=1),
    issued_ago: Optional[timedelta] = timedelta(0),
    refresh_token: Optional[str] = "refresh-1",
) -> TokenRecord:
    now = utc_now()
    return TokenRecord(
        access_token=access_token,
        refresh_token=refresh_token,
        issued_date=now - issued_ago if issued_ago is not None else None,
        expires_in=now + expires_in if expires_in is not None else None,
    )


class FakeExchange(TokenExchangeService):
    """Scripted exchange service recording every call."""

    def __init__(self):
        self.user: Dict[str, Any] = {"id": "u-1", "name": "Foo User"}
        self.token = make_token()
        self.error: Optional[Exception] = None
        self.refresh_errors: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.refresh_calls: List[str] = []

    async def exchange_code(self, code, provider, redirect_uri=None):
        self.calls.append((code, provider.name, redirect_uri))
        if self.error is not None:
            raise self.error
        return dict(self.user), self.token

    async def refresh(self, token, provider):
        self.refresh_calls.append(provider.name)
        if provider.name in self.refresh_errors:
            raise self.refresh_errors[provider.name]
        return make_token(f"refreshed-{provider.name}", refresh_token=token.refresh_token)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def providers() -> List[ProviderConfig]:
    return [
        ProviderConfig(
            name="foo",
            identifier="foo-svc",
            scopes="name email",
            key="user",
            refresh=True,
            refresh_max=3600,
        ),
        ProviderConfig(
            name="citizen",
            identifier="citizen-svc",
            version="v2",
            scopes="name nickname",
            key="citizen",
            auth_methods="eid,itsme",
            minimal_assurance_level="low",
            refresh=True,
        ),
        # Shares the "user" slot with foo
        ProviderConfig(name="bar", identifier="bar-svc", key="user", authentication_type="acm"),
    ]


@pytest.fixture
def registry(providers) -> ProviderRegistry:
    return ProviderRegistry(providers)


@pytest.fixture
def encryptor() -> PayloadEncryption:
    return PayloadEncryption(CLIENT_SECRET)


@pytest.fixture
def url_builder(registry, encryptor) -> OAuthUrlBuilder:
    return OAuthUrlBuilder(
        registry,
        oauth_host=OAUTH_HOST,
        client_id=CLIENT_ID,
        base_path="/auth",
        encryptor=encryptor,
    )


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def session(store) -> Session:
    return Session(store, ttl=3600)


@pytest.fixture
def exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def auth_service(registry, url_builder, exchange) -> AuthSessionService:
    return AuthSessionService(registry, url_builder, exchange, error_redirect=ERROR_REDIRECT)


@pytest.fixture(scope="session")
def logout_hash() -> str:
    return hash_logout_token(LOGOUT_SECRET, rounds=4)


@pytest.fixture
def settings(logout_hash) -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        oauth_host=OAUTH_HOST,
        base_path="/auth",
        error_redirect=ERROR_REDIRECT,
        logout_security_hash=logout_hash,
        log_dir=None,
    )


@pytest.fixture
def gateway(settings, registry, store, exchange, encryptor):
    return build_gateway(settings, registry=registry, store=store, exchange=exchange, encryptor=encryptor)


@pytest.fixture
def client(gateway) -> TestClient:
    return TestClient(create_app(gateway=gateway), base_url=APP_HOST)

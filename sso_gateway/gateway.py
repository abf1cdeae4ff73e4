"""
Component wiring.

Everything the routes need is built once from the settings and the provider registry and
kept on `app.state.gateway`. Tests pass their own store / exchange service / encryptor.
"""

from dataclasses import dataclass
from typing import Optional

from loguru import logger

from sso_gateway.core.encryption import PayloadEncryption, PayloadEncryptor
from sso_gateway.core.oauth.config import ProviderRegistry, load_provider_registry
from sso_gateway.core.oauth.exchange import HttpTokenExchangeService, TokenExchangeService
from sso_gateway.core.oauth.hooks import HookRunner
from sso_gateway.core.oauth.urls import OAuthUrlBuilder
from sso_gateway.core.session import MemorySessionStore, RedisSessionStore, SessionStore
from sso_gateway.core.settings import Settings
from sso_gateway.services import (
    AuthSessionService,
    LogoutNotificationService,
    RefreshScheduler,
    SessionStorePurgeAdapter,
)
from sso_gateway.services.logout_notification_service import LogoutAdapter
from sso_gateway.utils.imports import import_callable

LOG_PREFIX = "[Gateway]"

SESSION_STORE_ADAPTER = "session_store"


@dataclass
class Gateway:
    settings: Settings
    registry: ProviderRegistry
    store: SessionStore
    url_builder: OAuthUrlBuilder
    exchange: TokenExchangeService
    auth_service: AuthSessionService
    refresh_scheduler: RefreshScheduler
    logout_service: LogoutNotificationService


def build_session_store(settings: Settings) -> SessionStore:
    backend = settings.session_backend.lower()
    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("SESSION_BACKEND=redis requires REDIS_URL")
        return RedisSessionStore(key_prefix=settings.redis_key_prefix)
    if backend == "memory":
        if settings.environment == "production":
            logger.warning(f"{LOG_PREFIX} In-memory sessions in production: not shared between workers")
        return MemorySessionStore()
    raise ValueError(f"Unknown session backend '{settings.session_backend}'")


def build_logout_adapter(settings: Settings, store: SessionStore) -> Optional[LogoutAdapter]:
    if not settings.logout_adapter:
        return None
    if settings.logout_adapter == SESSION_STORE_ADAPTER:
        return SessionStorePurgeAdapter(store)
    return import_callable(settings.logout_adapter)


def build_gateway(
    settings: Settings,
    *,
    registry: Optional[ProviderRegistry] = None,
    store: Optional[SessionStore] = None,
    exchange: Optional[TokenExchangeService] = None,
    encryptor: Optional[PayloadEncryptor] = None,
    hook_runner: Optional[HookRunner] = None,
    logout_adapter: Optional[LogoutAdapter] = None,
) -> Gateway:
    """Assemble the gateway components; anything not passed in is built from settings."""
    if not settings.client_id or not settings.client_secret:
        logger.warning(f"{LOG_PREFIX} CLIENT_ID / CLIENT_SECRET not configured")

    registry = registry if registry is not None else load_provider_registry(settings.oauth_config_path)
    store = store if store is not None else build_session_store(settings)
    encryptor = encryptor if encryptor is not None else PayloadEncryption(settings.client_secret or settings.client_id or "unconfigured")
    exchange = exchange if exchange is not None else HttpTokenExchangeService(
        oauth_host=settings.oauth_host,
        api_host=settings.api_host,
        token_path=settings.token_path,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        timeout=settings.exchange_timeout_seconds,
    )

    url_builder = OAuthUrlBuilder(
        registry,
        oauth_host=settings.oauth_host,
        client_id=settings.client_id,
        base_path=settings.base_path,
        encryptor=encryptor,
    )

    return Gateway(
        settings=settings,
        registry=registry,
        store=store,
        url_builder=url_builder,
        exchange=exchange,
        auth_service=AuthSessionService(
            registry,
            url_builder,
            exchange,
            hook_runner,
            error_redirect=settings.error_redirect,
        ),
        refresh_scheduler=RefreshScheduler(registry, exchange),
        logout_service=LogoutNotificationService(
            registry,
            security_hash=settings.logout_security_hash,
            adapter=logout_adapter if logout_adapter is not None else build_logout_adapter(settings, store),
        ),
    )

"""
OAuth provider layer.

Module layout:
- config.py: ProviderConfig, ProviderRegistry, YAML loader
- urls.py: authorization / logout URL builder
- hooks.py: lifecycle hooks and their runner
- exchange.py: code exchange and token refresh
"""

from sso_gateway.core.oauth.config import (
    ProviderConfig,
    ProviderConfigLoader,
    ProviderRegistry,
    load_provider_registry,
)
from sso_gateway.core.oauth.exchange import HttpTokenExchangeService, TokenExchangeService
from sso_gateway.core.oauth.hooks import HookContext, HookRunner, HookSet, HookStage
from sso_gateway.core.oauth.urls import OAuthUrlBuilder

__all__ = [
    "ProviderConfig",
    "ProviderConfigLoader",
    "ProviderRegistry",
    "load_provider_registry",
    "TokenExchangeService",
    "HttpTokenExchangeService",
    "HookContext",
    "HookRunner",
    "HookSet",
    "HookStage",
    "OAuthUrlBuilder",
]

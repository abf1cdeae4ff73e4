"""
Authorization and logout URL construction.
"""

from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from sso_gateway.core.encryption import PayloadEncryptor
from sso_gateway.core.oauth.config import ProviderRegistry

AUTHORIZE_PATHS = {"v1": "/v1/authorize", "v2": "/v2/authorize"}
LOGOUT_PATHS = {"v1": "/v1/logout/redirect/encrypted", "v2": "/v2/logout/redirect/encrypted"}


class OAuthUrlBuilder:
    """Builds provider redirect URLs from the registry and per-request options."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        oauth_host: str,
        client_id: str,
        base_path: str,
        encryptor: PayloadEncryptor,
    ):
        self.registry = registry
        self.oauth_host = oauth_host.rstrip("/")
        self.client_id = client_id
        self.base_path = base_path
        self.encryptor = encryptor

    def login_callback_uri(self, host: str) -> str:
        return f"{host}{self.base_path}/login/callback"

    def logout_callback_uri(self, host: str, provider_name: str, state: str) -> str:
        return f"{host}{self.base_path}/logout/callback/{provider_name}?{urlencode({'state': state})}"

    def login_path(self, provider_name: str, from_url: Optional[str] = None) -> str:
        """Local path that starts a new login for the provider."""
        path = f"{self.base_path}/login/{provider_name}"
        if from_url:
            path = f"{path}?{urlencode({'fromUrl': from_url})}"
        return path

    def build_login_url(
        self,
        host: str,
        provider_name: str,
        state: str,
        options: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Authorization URL for a login attempt.

        Args:
            host: scheme://host of the current request, used for the default callback URL
            provider_name: registry key
            state: login correlation token
            options: request overrides (`auth_type`, `auth_methods`, `lng`)

        Raises:
            ProviderNotFoundError: unknown provider
        """
        provider = self.registry.require(provider_name)
        options = options or {}

        query: Dict[str, Any] = {
            "client_id": self.client_id,
            "redirect_uri": provider.redirect_uri or self.login_callback_uri(host),
            "state": state,
            "scope": provider.scopes,
            "service": provider.identifier,
            "save_consent": "true",
            "response_type": "code",
            "auth_type": options.get("auth_type") or provider.authentication_type,
        }

        if options.get("lng"):
            query["lng"] = options["lng"]

        if provider.is_v2:
            del query["service"]
            query["auth_methods"] = options.get("auth_methods") or provider.auth_methods
            query["minimal_assurance_level"] = provider.minimal_assurance_level

        query = {k: v for k, v in query.items() if v}
        return f"{self.oauth_host}{AUTHORIZE_PATHS[provider.version]}?{urlencode(query)}"

    def build_logout_url(
        self,
        provider_name: str,
        *,
        user_id: Any,
        access_token: Optional[str],
        redirect_uri: str,
    ) -> str:
        """
        Remote logout URL. User id, access token and post-logout redirect travel encrypted
        in the `data` parameter.

        Raises:
            ProviderNotFoundError: unknown provider
        """
        provider = self.registry.require(provider_name)
        payload = {
            "user_id": user_id,
            "access_token": access_token,
            "redirect_uri": redirect_uri,
        }

        query: Dict[str, Any] = {
            "client_id": self.client_id,
            "service": provider.identifier,
            "data": self.encryptor.encrypt(payload),
        }
        if provider.authentication_type:
            query["auth_type"] = provider.authentication_type

        return f"{self.oauth_host}{LOGOUT_PATHS[provider.version]}?{urlencode(query)}"

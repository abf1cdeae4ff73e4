"""
Token exchange with the authorization server.

The session coordinator only depends on the abstract `TokenExchangeService`:
- exchange_code: authorization code -> (user profile, token)
- refresh: stale token -> new token

`HttpTokenExchangeService` implements it over httpx:
1. POST the token endpoint (authorization_code or refresh_token grant)
2. GET the provider's profile URL with the access token
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple, cast

import httpx
from loguru import logger

from sso_gateway.common.exceptions import TokenExchangeError
from sso_gateway.core.oauth.config import ProviderConfig
from sso_gateway.core.session.models import TokenRecord, utc_now

LOG_PREFIX = "[TokenExchange]"

_KNOWN_TOKEN_FIELDS = {"access_token", "refresh_token", "token_type", "expires_in", "user"}


class TokenExchangeService(ABC):
    """Exchanges codes and refreshes tokens for a provider."""

    @abstractmethod
    async def exchange_code(
        self,
        code: str,
        provider: ProviderConfig,
        redirect_uri: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], TokenRecord]:
        """
        Trade an authorization code for the user profile and token.

        Raises:
            TokenExchangeError: upstream rejected the code or returned garbage
        """

    @abstractmethod
    async def refresh(self, token: TokenRecord, provider: ProviderConfig) -> TokenRecord:
        """
        Get a fresh token using `token.refresh_token`.

        Raises:
            TokenExchangeError: upstream refused the refresh
        """

    def parse_token(self, payload: Dict[str, Any], now: Optional[datetime] = None) -> TokenRecord:
        """
        Convert a token endpoint response into a TokenRecord.

        `expires_in` arrives as a lifetime in seconds and is stored as the absolute
        expiry time; `issued_date` is the time of receipt.
        """
        access_token = payload.get("access_token")
        if not access_token:
            raise TokenExchangeError("No access token in response")

        now = now or utc_now()
        expires_in = payload.get("expires_in")
        expires_at = None
        if expires_in not in (None, ""):
            try:
                expires_at = now + timedelta(seconds=float(expires_in))
            except (TypeError, ValueError):
                raise TokenExchangeError(f"Invalid expires_in value: {expires_in!r}")

        return TokenRecord(
            access_token=access_token,
            refresh_token=payload.get("refresh_token"),
            token_type=payload.get("token_type") or "Bearer",
            issued_date=now,
            expires_in=expires_at,
            extra={k: v for k, v in payload.items() if k not in _KNOWN_TOKEN_FIELDS},
        )


class HttpTokenExchangeService(TokenExchangeService):
    """Token exchange over HTTP."""

    def __init__(
        self,
        *,
        oauth_host: str,
        api_host: str,
        token_path: str,
        client_id: str,
        client_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_url = f"{oauth_host.rstrip('/')}{token_path}"
        self.api_host = api_host.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def exchange_code(
        self,
        code: str,
        provider: ProviderConfig,
        redirect_uri: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], TokenRecord]:
        if not code:
            raise TokenExchangeError("Authorization code is required", provider=provider.name)

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if redirect_uri:
            data["redirect_uri"] = redirect_uri

        payload = await self._request_token(provider, data)
        token = self.parse_token(payload)

        embedded_user = payload.get("user")
        if provider.profile_url:
            user = await self._fetch_profile(provider, token.access_token)
        elif isinstance(embedded_user, dict):
            user = dict(embedded_user)
        else:
            raise TokenExchangeError(f"No profile URL configured for {provider.name}", provider=provider.name)

        return user, token

    async def refresh(self, token: TokenRecord, provider: ProviderConfig) -> TokenRecord:
        if not token.refresh_token:
            raise TokenExchangeError(f"No refresh token stored for {provider.name}", provider=provider.name)

        data = {
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        payload = await self._request_token(provider, data)
        refreshed = self.parse_token(payload)
        if not refreshed.refresh_token:
            # Upstream keeps the old refresh token valid when it does not rotate it
            refreshed = refreshed.model_copy(update={"refresh_token": token.refresh_token})

        logger.info(f"{LOG_PREFIX} Token refreshed for {provider.name}")
        return refreshed

    async def _request_token(self, provider: ProviderConfig, data: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(self.token_url, data=data, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            logger.error(f"{LOG_PREFIX} Token request failed for {provider.name}: {type(e).__name__}: {e}")
            raise TokenExchangeError(f"Token request failed: {e}", provider=provider.name) from e

        if response.status_code != 200:
            logger.error(f"{LOG_PREFIX} {data['grant_type']} failed for {provider.name}: {response.status_code}")
            raise TokenExchangeError(
                f"Token endpoint returned {response.status_code}",
                provider=provider.name,
                status_code=response.status_code,
            )

        try:
            return cast(Dict[str, Any], response.json())
        except ValueError as e:
            raise TokenExchangeError("Token endpoint returned invalid JSON", provider=provider.name) from e

    def _profile_url(self, provider: ProviderConfig) -> str:
        url = cast(str, provider.profile_url)
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.api_host}/{url.lstrip('/')}"

    async def _fetch_profile(self, provider: ProviderConfig, access_token: str) -> Dict[str, Any]:
        url = self._profile_url(provider)
        try:
            async with self._client() as client:
                response = await client.get(url, headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as e:
            logger.error(f"{LOG_PREFIX} Profile fetch failed for {provider.name}: {type(e).__name__}: {e}")
            raise TokenExchangeError(f"Profile request failed: {e}", provider=provider.name) from e

        if response.status_code != 200:
            logger.error(f"{LOG_PREFIX} Profile fetch failed for {provider.name}: {response.status_code}")
            raise TokenExchangeError(
                f"Failed to fetch profile: {response.status_code}",
                provider=provider.name,
                status_code=response.status_code,
            )

        try:
            profile = response.json()
        except ValueError as e:
            raise TokenExchangeError("Profile endpoint returned invalid JSON", provider=provider.name) from e
        if not isinstance(profile, dict):
            raise TokenExchangeError("Profile endpoint did not return an object", provider=provider.name)

        logger.info(f"{LOG_PREFIX} Profile fetched for {provider.name}")
        return profile

"""
Provider-initiated logout notifications.

The authorization server calls `POST /loggedout/{service}` when a user logs out elsewhere.
The call is authenticated with a shared secret (bcrypt-hashed in config) and handed to a
session-store adapter, which removes that user's identity from every session it can find.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from sso_gateway.common.exceptions import LogoutAdapterError, UnauthorizedException
from sso_gateway.core.oauth.config import ProviderRegistry
from sso_gateway.core.security import verify_logout_token
from sso_gateway.core.session import SessionStore

LOG_PREFIX = "[LogoutNotification]"

# adapter(session_key, token_key, body)
LogoutAdapter = Callable[[str, str, Any], Union[Awaitable[Any], Any]]


def notified_user_id(body: Any) -> Optional[str]:
    """User id from a notification body: `user_id`, `userId` or `user.id`."""
    if not isinstance(body, dict):
        return None
    user_id = body.get("user_id") or body.get("userId")
    if user_id is None and isinstance(body.get("user"), dict):
        user_id = body["user"].get("id")
    return str(user_id) if user_id not in (None, "") else None


class SessionStorePurgeAdapter:
    """
    Built-in adapter: scan the store and drop the notified user's identity.

    Both user and token live in the identity stored under `session_key`, so
    `token_key` needs no separate handling. Purged sessions keep their remaining TTL.
    """

    def __init__(self, store: SessionStore):
        self.store = store

    async def __call__(self, session_key: str, token_key: str, body: Any) -> int:
        user_id = notified_user_id(body)
        if user_id is None:
            raise ValueError("Logout notification does not identify a user")

        purged = 0
        async for session_id, data in self.store.scan():
            identities = data.get("identities") or {}
            identity = identities.get(session_key)
            if not identity:
                continue
            user = identity.get("user") or {}
            ids = {user.get("id"), (user.get("profile") or {}).get("id")}
            if user_id not in {str(i) for i in ids if i is not None}:
                continue

            del identities[session_key]
            await self.store.update(session_id, data)
            purged += 1

        logger.info(f"{LOG_PREFIX} Purged '{session_key}' from {purged} session(s)")
        return purged


class LogoutNotificationService:
    """Authenticates logout notifications and dispatches them to the adapter."""

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        security_hash: str,
        adapter: Optional[LogoutAdapter] = None,
    ):
        self.registry = registry
        self.security_hash = security_hash
        self.adapter = adapter

    async def handle(self, provider_name: str, token: Optional[str], body: Any) -> None:
        """
        Raises:
            ProviderNotFoundError: unknown provider (404)
            UnauthorizedException: wrong shared secret (401)
            LogoutAdapterError: the adapter failed (500)
        """
        provider = self.registry.require(provider_name)

        if self.adapter is None:
            logger.info(f"{LOG_PREFIX} No session store adapter configured, ignoring notification")
            return

        if not verify_logout_token(token or "", self.security_hash):
            logger.warning(f"{LOG_PREFIX} Rejected notification for {provider.name}: bad logout token")
            raise UnauthorizedException("Invalid logout token")

        session_key = provider.session_key
        try:
            result = self.adapter(session_key, f"{session_key}Token", body)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"{LOG_PREFIX} Session store adapter failed for {provider.name}: {type(e).__name__}: {e}")
            raise LogoutAdapterError(e) from e

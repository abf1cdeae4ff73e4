"""
Auth session service - login / callback / logout state machine

Session states per provider:
    Anonymous -> LoginInitiated (login state stored)
              -> Authenticated (identity stored, login state consumed)
              -> LoggingOut (logout state stored)
              -> Anonymous (identity removed, session id regenerated)

Every method persists the session before it returns the redirect target, so a redirect
never races ahead of the write it depends on.
"""

import hmac
from typing import Any, Dict, Mapping, Optional

from fastapi import Request
from loguru import logger

from sso_gateway.common.exceptions import HookError, TokenExchangeError
from sso_gateway.core.oauth.config import ProviderRegistry
from sso_gateway.core.oauth.exchange import TokenExchangeService
from sso_gateway.core.oauth.hooks import HookContext, HookRunner, HookStage
from sso_gateway.core.oauth.urls import OAuthUrlBuilder
from sso_gateway.core.security import generate_login_state, generate_logout_state, provider_from_state
from sso_gateway.core.session import Session

LOG_PREFIX = "[AuthSession]"

DEFAULT_REDIRECT = "/"


class AuthSessionService:
    """Coordinates provider redirects with the server-side session."""

    def __init__(
        self,
        registry: ProviderRegistry,
        url_builder: OAuthUrlBuilder,
        exchange: TokenExchangeService,
        hook_runner: Optional[HookRunner] = None,
        *,
        error_redirect: str = DEFAULT_REDIRECT,
    ):
        self.registry = registry
        self.url_builder = url_builder
        self.exchange = exchange
        self.hook_runner = hook_runner or HookRunner()
        self.error_redirect = error_redirect

    # ==================== Login ====================

    async def initiate_login(
        self,
        session: Session,
        provider_name: str,
        host: str,
        options: Optional[Mapping[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> str:
        """
        Start a login: mint a state, remember where to return, run pre-login hooks.

        Returns:
            The provider authorization URL, or the error page if a hook failed

        Raises:
            ProviderNotFoundError: unknown provider
        """
        provider = self.registry.require(provider_name)
        options = options or {}

        state = generate_login_state(provider.name)
        url = self.url_builder.build_login_url(host, provider.name, state, options)
        session.data.login_states[provider.name] = state
        session.data.from_url = options.get("fromUrl") or DEFAULT_REDIRECT

        try:
            await self.hook_runner.run(HookContext(HookStage.PRE_LOGIN, provider, session, request))
        except HookError:
            return self.error_redirect

        await session.save()
        logger.info(f"{LOG_PREFIX} Login initiated for {provider.name}")
        return url

    async def handle_callback(
        self,
        session: Session,
        code: Optional[str],
        state: Optional[str],
        host: str,
        request: Optional[Request] = None,
    ) -> str:
        """
        Complete a login from the provider redirect.

        A state that does not match the stored one sends the browser back to the
        login start, without touching the token endpoint.

        Raises:
            ProviderNotFoundError: the state names an unknown provider
        """
        if not code or not state:
            logger.warning(f"{LOG_PREFIX} Callback without code or state")
            return self.error_redirect

        provider = self.registry.require(provider_from_state(state))
        expected = session.data.login_states.get(provider.name)
        if not expected or not hmac.compare_digest(state.encode(), expected.encode()):
            logger.warning(f"{LOG_PREFIX} Stale or unknown state for {provider.name}, restarting login")
            return self.url_builder.login_path(provider.name, session.data.from_url)

        # Single use, whatever happens next
        del session.data.login_states[provider.name]

        redirect_uri = provider.redirect_uri or self.url_builder.login_callback_uri(host)
        try:
            user, token = await self.exchange.exchange_code(code, provider, redirect_uri)
        except TokenExchangeError as e:
            logger.error(f"{LOG_PREFIX} Code exchange failed for {provider.name}: {e}")
            await session.save()
            return self.error_redirect
        except Exception as e:
            logger.opt(exception=True).error(f"{LOG_PREFIX} Code exchange error for {provider.name}: {type(e).__name__}")
            await session.save()
            return self.error_redirect

        key = provider.session_key
        previous = session.data.identities.get(key)
        user = dict(user)
        user["serviceType"] = provider.name
        session.data.set_identity(key, user, token)

        try:
            await self.hook_runner.run(
                HookContext(HookStage.LOGIN_SUCCESS, provider, session, request, user=user, token=token)
            )
        except HookError:
            if previous is not None:
                session.data.identities[key] = previous
            else:
                session.data.remove_identity(key)
            await session.save()
            return self.error_redirect

        await session.save()
        logger.info(f"{LOG_PREFIX} Login completed for {provider.name}")
        return session.data.from_url or DEFAULT_REDIRECT

    # ==================== Logout ====================

    async def initiate_logout(
        self,
        session: Session,
        provider_name: str,
        host: str,
        options: Optional[Mapping[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> str:
        """
        Send an authenticated user to the provider's logout endpoint.

        Returns:
            The remote logout URL, or `/` when nobody is logged in for the provider

        Raises:
            ProviderNotFoundError: unknown provider
        """
        provider = self.registry.require(provider_name)
        options = options or {}

        identity = session.data.identities.get(provider.session_key)
        if identity is None:
            return DEFAULT_REDIRECT

        session.data.logout_from_url = options.get("fromUrl") or options.get("fromurl") or DEFAULT_REDIRECT
        state = generate_logout_state()
        session.data.logout_states[provider.name] = state

        user_id = identity.user.get("id")
        if provider.is_v2 and not user_id:
            user_id = (identity.user.get("profile") or {}).get("id")

        url = self.url_builder.build_logout_url(
            provider.name,
            user_id=user_id,
            access_token=identity.token.access_token,
            redirect_uri=self.url_builder.logout_callback_uri(host, provider.name, state),
        )

        try:
            await self.hook_runner.run(HookContext(HookStage.PRE_LOGOUT, provider, session, request))
        except HookError:
            # Logging out must not be blocked by an extension
            pass

        await session.save()
        logger.info(f"{LOG_PREFIX} Logout initiated for {provider.name}")
        return url

    async def handle_logout_callback(
        self,
        session: Session,
        provider_name: str,
        state: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> str:
        """
        Finish a logout: drop the provider's identity, move the session to a new id.

        Fields other than the provider's identity and logout state are carried over.

        Raises:
            ProviderNotFoundError: unknown provider
        """
        provider = self.registry.require(provider_name)

        try:
            await self.hook_runner.run(HookContext(HookStage.LOGOUT_SUCCESS, provider, session, request))
        except HookError:
            pass

        expected = session.data.logout_states.get(provider.name)
        if state and expected and state != expected:
            logger.warning(f"{LOG_PREFIX} Logout state mismatch for {provider.name}, cleaning up anyway")

        session.data.remove_identity(provider.session_key)
        session.data.logout_states.pop(provider.name, None)

        await session.regenerate()
        await session.save()
        logger.info(f"{LOG_PREFIX} Logout completed for {provider.name}")
        return session.data.logout_from_url or DEFAULT_REDIRECT

    # ==================== Status ====================

    def is_logged_in(self, session: Session, provider_name: Optional[str] = None) -> Dict[str, Any]:
        """
        `{"isLoggedin": bool, <session key>: user, ...}` for one provider or for all.

        Raises:
            ProviderNotFoundError: unknown provider
        """
        if provider_name is not None:
            keys = [self.registry.require(provider_name).session_key]
        else:
            keys = self.registry.session_keys()

        users: Dict[str, Any] = {}
        for key in keys:
            user = session.data.get_user(key)
            if user:
                users[key] = user

        if not users:
            return {"isLoggedin": False}
        return {"isLoggedin": True, **users}

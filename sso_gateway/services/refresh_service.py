"""
Proactive token refresh.

Runs before authenticated requests: every provider with refresh enabled gets its session
token renewed when it is about to expire, as long as the token is still inside the
provider's refresh window.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from sso_gateway.core.oauth.config import ProviderConfig, ProviderRegistry
from sso_gateway.core.oauth.exchange import TokenExchangeService
from sso_gateway.core.session import Session, TokenRecord, utc_now

LOG_PREFIX = "[TokenRefresh]"

EXPIRY_MARGIN = timedelta(minutes=5)


def should_refresh(token: TokenRecord, provider: ProviderConfig, now: Optional[datetime] = None) -> bool:
    """
    True when the token is inside the refresh window and expires within the margin.

    Window: no `issued_date`, no `refresh_max`, or `issued_date + refresh_max` still ahead.
    Margin: `expires_in` (absolute) at or before `now + 5 minutes`. A token without an
    expiry is never refreshed.
    """
    now = now or utc_now()

    within_window = (
        token.issued_date is None
        or not provider.refresh_max
        or token.issued_date + timedelta(seconds=provider.refresh_max) > now
    )
    near_expiry = token.expires_in is not None and token.expires_in <= now + EXPIRY_MARGIN
    return within_window and near_expiry


class RefreshScheduler:
    """Refreshes the near-expiry tokens of a session, concurrently."""

    def __init__(self, registry: ProviderRegistry, exchange: TokenExchangeService):
        self.registry = registry
        self.exchange = exchange

    def due_tokens(self, session: Session, now: Optional[datetime] = None) -> Dict[str, Tuple[ProviderConfig, TokenRecord]]:
        """Session key -> (provider, token) for every token that should be refreshed now."""
        now = now or utc_now()
        due: Dict[str, Tuple[ProviderConfig, TokenRecord]] = {}
        seen: List[str] = []

        for provider in self.registry.values():
            if not provider.refresh:
                continue
            key = provider.session_key
            token = session.data.get_token(key)
            # Providers sharing a session key share a token: first one wins
            if key in seen or token is None:
                continue
            seen.append(key)
            if should_refresh(token, provider, now):
                due[key] = (provider, token)
        return due

    async def refresh_session_tokens(self, session: Session) -> bool:
        """
        Refresh every due token.

        The first failure cancels the refreshes still in flight and leaves the session
        untouched: the request proceeds with the current tokens.

        Returns:
            True if tokens were refreshed and the session saved
        """
        due = self.due_tokens(session)
        if not due:
            return False

        tasks = {
            key: asyncio.create_task(self.exchange.refresh(token, provider)) for key, (provider, token) in due.items()
        }
        done, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)

        failed = [key for key, task in tasks.items() if task in done and task.exception() is not None]
        if failed:
            # First failure aborts the round; still-running refreshes are dropped
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for key in failed:
                error = tasks[key].exception()
                logger.warning(f"{LOG_PREFIX} Refresh failed for '{key}': {type(error).__name__}: {error}")
            return False

        for key, task in tasks.items():
            session.data.identities[key].token = task.result()

        await session.save()
        logger.info(f"{LOG_PREFIX} Refreshed {len(due)} token(s)")
        return True

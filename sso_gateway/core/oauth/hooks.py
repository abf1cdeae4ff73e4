"""
Lifecycle hooks.

Providers may attach callables to four points of the login/logout flow:

- pre_login: before the authorization redirect is issued
- login_success: after the callback stored the user and token
- pre_logout: before the remote logout redirect is issued
- logout_success: on the logout callback, before the session is cleaned up

A hook receives a `HookContext` and may be sync or async. Raising means failure.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from loguru import logger

from sso_gateway.common.exceptions import HookError
from sso_gateway.utils.imports import import_callable

if TYPE_CHECKING:
    from fastapi import Request

    from sso_gateway.core.oauth.config import ProviderConfig
    from sso_gateway.core.session.models import TokenRecord
    from sso_gateway.core.session.session import Session

LOG_PREFIX = "[OAuthHooks]"


class HookStage(str, Enum):
    PRE_LOGIN = "pre_login"
    LOGIN_SUCCESS = "login_success"
    PRE_LOGOUT = "pre_logout"
    LOGOUT_SUCCESS = "logout_success"


@dataclass
class HookContext:
    """What a hook gets to see (and may mutate: the session)."""

    stage: HookStage
    provider: "ProviderConfig"
    session: "Session"
    request: Optional["Request"] = None
    user: Optional[Dict[str, Any]] = None
    token: Optional["TokenRecord"] = None


Hook = Callable[[HookContext], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class HookSet:
    """Ordered hooks per stage."""

    pre_login: Tuple[Hook, ...] = ()
    login_success: Tuple[Hook, ...] = ()
    pre_logout: Tuple[Hook, ...] = ()
    logout_success: Tuple[Hook, ...] = ()

    def for_stage(self, stage: HookStage) -> Tuple[Hook, ...]:
        return getattr(self, stage.value)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "HookSet":
        """
        Build from config: `{stage: [reference-or-callable, ...]}`.

        References are `module:attribute` strings and are imported immediately,
        so a typo fails at startup rather than on the first login.
        """
        if not raw:
            return cls()

        unknown = set(raw) - {stage.value for stage in HookStage}
        if unknown:
            raise ValueError(f"Unknown hook stage(s): {', '.join(sorted(unknown))}")

        resolved: Dict[str, Tuple[Hook, ...]] = {}
        for stage in HookStage:
            entries = raw.get(stage.value) or []
            if not isinstance(entries, (list, tuple)):
                entries = [entries]
            resolved[stage.value] = tuple(
                entry if callable(entry) else import_callable(str(entry)) for entry in entries
            )
        return cls(**resolved)


def hook_name(hook: Hook) -> str:
    return getattr(hook, "__qualname__", None) or getattr(hook, "__name__", None) or repr(hook)


class HookRunner:
    """Sequential fold over a hook list; the first failure stops the chain."""

    async def run_hooks(self, hooks: Sequence[Hook], context: HookContext) -> None:
        """
        Run `hooks` in order.

        Raises:
            HookError: wraps the first exception raised by a hook
        """
        for hook in hooks:
            try:
                result = hook(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                name = hook_name(hook)
                logger.warning(f"{LOG_PREFIX} {context.stage.value} hook '{name}' failed for {context.provider.name}: {e}")
                raise HookError(context.stage.value, name, e) from e

    async def run(self, context: HookContext) -> None:
        """Run the hooks the context's provider configured for the context's stage."""
        await self.run_hooks(context.provider.hooks.for_stage(context.stage), context)

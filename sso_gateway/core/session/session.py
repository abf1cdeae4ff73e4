"""
Server-side session bound to a cookie.
"""

import secrets
from typing import Iterable, Optional

from loguru import logger
from pydantic import ValidationError

from sso_gateway.core.session.models import SessionData
from sso_gateway.core.session.store import SessionStore

LOG_PREFIX = "[Session]"

# Fields copied into a regenerated session, unless removed beforehand
SURVIVING_FIELDS = tuple(SessionData.model_fields)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class Session:
    """A session id, its typed data, and the store it is persisted to."""

    def __init__(
        self,
        store: SessionStore,
        ttl: int,
        session_id: Optional[str] = None,
        data: Optional[SessionData] = None,
    ):
        self._store = store
        self.ttl = ttl
        self.is_new = session_id is None
        self.id = session_id or new_session_id()
        self.data = data or SessionData()
        self.previous_id: Optional[str] = None

    @classmethod
    async def load(cls, store: SessionStore, session_id: Optional[str], ttl: int) -> "Session":
        """Load by cookie value; unknown, expired or corrupt ids start a fresh session."""
        if session_id:
            raw = await store.load(session_id)
            if raw is not None:
                try:
                    return cls(store, ttl, session_id=session_id, data=SessionData.model_validate(raw))
                except ValidationError as e:
                    logger.warning(f"{LOG_PREFIX} Discarding invalid session data: {e.error_count()} errors")
        return cls(store, ttl)

    async def save(self) -> None:
        """
        Persist the session; returns once the store has acknowledged the write.

        After a `regenerate()`, the old storage slot is deleted only once the new id is
        saved, so a failed write leaves the previous session loadable.
        """
        await self._store.save(self.id, self.data.model_dump(mode="json"), self.ttl)
        self.is_new = False
        if self.previous_id is not None:
            await self._store.delete(self.previous_id)
            self.previous_id = None

    async def regenerate(self, keep: Iterable[str] = SURVIVING_FIELDS) -> None:
        """
        Move the session to a fresh id.

        The current data is snapshotted and the `keep` fields are copied into the new
        session. Nothing is persisted or deleted until `save()`.
        """
        snapshot = self.data.model_copy(deep=True)
        old_id = self.previous_id or self.id

        self.previous_id = old_id
        self.id = new_session_id()
        self.is_new = True
        self.data = SessionData(**{name: getattr(snapshot, name) for name in keep})
        logger.debug(f"{LOG_PREFIX} Regenerated session {old_id[:8]}... -> {self.id[:8]}...")

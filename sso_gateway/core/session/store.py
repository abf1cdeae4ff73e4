"""
Session store adapters.

A store maps a session id to a JSON-serializable dict. `save` must only return once the
data is durable: the gateway issues redirects right after it.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from loguru import logger

from sso_gateway.common.exceptions import SessionStoreError
from sso_gateway.core.redis import RedisClient

LOG_PREFIX = "[SessionStore]"


class SessionStore(ABC):
    """Key-value session storage."""

    @abstractmethod
    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Stored data, or None if missing or expired."""

    @abstractmethod
    async def save(self, session_id: str, data: Dict[str, Any], ttl: int) -> None:
        """Persist `data` under `session_id` for `ttl` seconds."""

    @abstractmethod
    async def update(self, session_id: str, data: Dict[str, Any]) -> None:
        """Overwrite an existing session, keeping its remaining TTL; missing ids are ignored."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove a session; missing ids are ignored."""

    @abstractmethod
    def scan(self) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        """Iterate over every live session."""


class MemorySessionStore(SessionStore):
    """In-process store for development and tests. Not shared between workers."""

    def __init__(self):
        self._sessions: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        expires_at, data = entry
        if expires_at <= time.monotonic():
            self._sessions.pop(session_id, None)
            return None
        # Copy so callers never mutate stored state without saving
        return json.loads(json.dumps(data))

    async def save(self, session_id: str, data: Dict[str, Any], ttl: int) -> None:
        self._sessions[session_id] = (time.monotonic() + ttl, json.loads(json.dumps(data)))

    async def update(self, session_id: str, data: Dict[str, Any]) -> None:
        entry = self._sessions.get(session_id)
        if entry is not None:
            self._sessions[session_id] = (entry[0], json.loads(json.dumps(data)))

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def scan(self) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        for session_id in list(self._sessions):
            data = await self.load(session_id)
            if data is not None:
                yield session_id, data

    def __len__(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    """Redis-backed store: one JSON string per session with a TTL."""

    def __init__(self, key_prefix: str = "sso:sess:"):
        self.key_prefix = key_prefix

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def load(self, session_id: str) -> Optional[Dict[str, Any]]:
        raw = await RedisClient.get(self._key(session_id))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"{LOG_PREFIX} Discarding unreadable session {session_id[:8]}...")
            return None

    async def save(self, session_id: str, data: Dict[str, Any], ttl: int) -> None:
        if not await RedisClient.set(self._key(session_id), json.dumps(data, ensure_ascii=False), expire=ttl):
            raise SessionStoreError("Redis is not available, session not saved")

    async def update(self, session_id: str, data: Dict[str, Any]) -> None:
        key = self._key(session_id)
        if not await RedisClient.set(key, json.dumps(data, ensure_ascii=False), keep_ttl=True, only_existing=True):
            raise SessionStoreError("Redis is not available, session not saved")

    async def delete(self, session_id: str) -> None:
        await RedisClient.delete(self._key(session_id))

    async def scan(self) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        async for key in RedisClient.scan_keys(f"{self.key_prefix}*"):
            session_id = key[len(self.key_prefix):]
            data = await self.load(session_id)
            if data is not None:
                yield session_id, data

"""Server-side session: typed record, store adapters, cookie-bound session object."""

from sso_gateway.core.session.models import Identity, SessionData, TokenRecord, utc_now
from sso_gateway.core.session.session import SURVIVING_FIELDS, Session
from sso_gateway.core.session.store import MemorySessionStore, RedisSessionStore, SessionStore

__all__ = [
    "Identity",
    "SessionData",
    "TokenRecord",
    "utc_now",
    "Session",
    "SURVIVING_FIELDS",
    "SessionStore",
    "MemorySessionStore",
    "RedisSessionStore",
]

"""
Service layer
"""

from .auth_session_service import AuthSessionService
from .logout_notification_service import LogoutNotificationService, SessionStorePurgeAdapter
from .refresh_service import RefreshScheduler, should_refresh

__all__ = [
    "AuthSessionService",
    "LogoutNotificationService",
    "SessionStorePurgeAdapter",
    "RefreshScheduler",
    "should_refresh",
]

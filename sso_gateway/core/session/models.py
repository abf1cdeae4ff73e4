"""
Typed session record.

One browser session holds, per session key, the user profile and token issued by a provider,
plus the pending login/logout correlation tokens per provider name. Providers configured with
the same session key share one identity slot.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenRecord(BaseModel):
    """Provider token. `expires_in` is the absolute expiry time, not a duration."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    issued_date: Optional[datetime] = None
    expires_in: Optional[datetime] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("issued_date", "expires_in", mode="after")
    @classmethod
    def ensure_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Identity(BaseModel):
    """User + token stored under one session key."""

    user: Dict[str, Any]
    token: TokenRecord


class SessionData(BaseModel):
    """Everything the gateway keeps in a session."""

    model_config = ConfigDict(extra="ignore")

    identities: Dict[str, Identity] = Field(default_factory=dict)  # session key -> identity
    login_states: Dict[str, str] = Field(default_factory=dict)  # provider -> pending login state
    logout_states: Dict[str, str] = Field(default_factory=dict)  # provider -> logout correlation token
    from_url: Optional[str] = None
    logout_from_url: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)  # application data, untouched by the gateway

    def get_user(self, session_key: str) -> Optional[Dict[str, Any]]:
        identity = self.identities.get(session_key)
        return identity.user if identity else None

    def get_token(self, session_key: str) -> Optional[TokenRecord]:
        identity = self.identities.get(session_key)
        return identity.token if identity else None

    def set_identity(self, session_key: str, user: Dict[str, Any], token: TokenRecord) -> None:
        self.identities[session_key] = Identity(user=user, token=token)

    def remove_identity(self, session_key: str) -> Optional[Identity]:
        return self.identities.pop(session_key, None)

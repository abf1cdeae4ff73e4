"""
Security helpers - state tokens and shared-secret verification
"""

import uuid

import bcrypt

STATE_SEPARATOR = "_"


def generate_login_state(provider_name: str) -> str:
    """Login correlation token: `<provider>_<uuid4>`."""
    return f"{provider_name}{STATE_SEPARATOR}{uuid.uuid4()}"


def provider_from_state(state: str) -> str:
    """Provider name encoded in a login state (text before the first separator)."""
    return state.split(STATE_SEPARATOR, 1)[0]


def generate_logout_state() -> str:
    """Logout correlation token."""
    return str(uuid.uuid4())


def hash_logout_token(token: str, rounds: int = 12) -> str:
    """bcrypt hash for the LOGOUT_SECURITY_HASH setting."""
    return bcrypt.hashpw(token.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_logout_token(token: str, security_hash: str) -> bool:
    """
    Check a provider logout token against the configured bcrypt hash.

    bcrypt compares in constant time. An empty or malformed hash never matches.
    """
    if not security_hash:
        return False
    try:
        return bcrypt.checkpw((token or "").encode("utf-8"), security_hash.encode("utf-8"))
    except ValueError:
        return False

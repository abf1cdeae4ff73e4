"""
Logout payload encryption

The logout redirect carries `{user_id, access_token, redirect_uri}` as an opaque blob that
only the authorization server can read. Both sides derive the key from the client secret.
"""
import base64
import json
from typing import Any, Dict, Protocol

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

KDF_SALT = b"sso_gateway_logout"
KDF_ITERATIONS = 100000


class PayloadEncryptor(Protocol):
    """Symmetric encryption primitive used by the URL builder."""

    def encrypt(self, data: Dict[str, Any]) -> str: ...


class PayloadEncryption:
    """Fernet encryption keyed by a shared secret."""

    def __init__(self, key: str | bytes):
        """
        Args:
            key: A Fernet key, or any secret string (derived with PBKDF2-SHA256)
        """
        if not key:
            raise ValueError("Encryption key must not be empty")
        if isinstance(key, str):
            key = key.encode()

        try:
            self.fernet = Fernet(key)
        except ValueError:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=KDF_SALT,
                iterations=KDF_ITERATIONS,
            )
            self.fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(key)))

    def encrypt(self, data: Dict[str, Any]) -> str:
        """Serialize `data` as JSON and encrypt it into a URL-safe token."""
        json_str = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        return self.fernet.encrypt(json_str.encode()).decode()

    def decrypt(self, token: str) -> Dict[str, Any]:
        """Inverse of `encrypt`."""
        return json.loads(self.fernet.decrypt(token.encode()).decode())

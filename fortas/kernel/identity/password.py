"""
Password hashing utilities using bcrypt.

The secret is HMAC-SHA256'd with a server-side pepper before bcrypt, which
also keeps long passwords clear of bcrypt's 72-byte input limit.
"""

import base64
import hashlib
import hmac
from typing import Optional

import bcrypt

from fortas.config import get_settings

# Number of rounds for bcrypt hashing (12 is secure default)
BCRYPT_ROUNDS = 12


class PasswordHasher:
    """Password hashing service."""

    def __init__(self, pepper: Optional[str] = None, rounds: Optional[int] = None):
        settings = get_settings()
        self.pepper = (pepper if pepper is not None else settings.password_pepper).encode("utf-8")
        self.rounds = rounds or settings.bcrypt_rounds or BCRYPT_ROUNDS

    def _prehash(self, password: str) -> bytes:
        """Peppered digest, base64 encoded so bcrypt never sees NUL bytes."""
        digest = hmac.new(self.pepper, password.encode("utf-8"), hashlib.sha256).digest()
        return base64.b64encode(digest)

    def hash(self, password: str) -> str:
        """
        Hash a password with a fresh per-record salt.

        Args:
            password: Plain text password

        Returns:
            Hashed password string
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(self._prehash(password), salt)
        return hashed.decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its hash.

        Args:
            plain_password: Plain text password to verify
            hashed_password: Stored hashed password

        Returns:
            True if password matches, False otherwise (including malformed hashes)
        """
        try:
            return bcrypt.checkpw(
                self._prehash(plain_password),
                hashed_password.encode("utf-8"),
            )
        except (ValueError, TypeError, AttributeError):
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check if a password hash needs to be upgraded.

        bcrypt hashes encode the cost after the second '$': $2b$XX$...
        """
        try:
            parts = hashed_password.split("$")
            if len(parts) >= 3:
                return int(parts[2]) != self.rounds
            return True
        except (ValueError, AttributeError):
            return True

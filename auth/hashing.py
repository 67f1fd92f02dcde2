"""One-way hashing for passwords and verification codes.

bcrypt with a configurable cost. Codes are hashed exactly like passwords so a
leaked pending_auth row reveals neither.
"""

import secrets

import bcrypt

# bcrypt only looks at the first 72 bytes; newer releases raise instead of truncating.
_BCRYPT_MAX_BYTES = 72


class CredentialHasher:
    """Salted, adaptive one-way hash + verify."""

    def __init__(self, rounds: int = 10):
        self._rounds = rounds

    @staticmethod
    def _encode(secret: str) -> bytes:
        return secret.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, secret: str) -> str:
        """Hash a secret. Each call uses a fresh salt."""
        digest = bcrypt.hashpw(self._encode(secret), bcrypt.gensalt(rounds=self._rounds))
        return digest.decode("utf-8")

    def verify(self, secret: str, digest: str) -> bool:
        """Check a secret against a stored digest.

        A malformed digest is a mismatch, not an error.
        """
        try:
            return bcrypt.checkpw(self._encode(secret), digest.encode("utf-8"))
        except ValueError:
            return False

    @staticmethod
    def generate_code() -> str:
        """Six-digit numeric code, uniform over [100000, 999999]."""
        return str(100000 + secrets.randbelow(900000))

"""Access/refresh token signing and verification.

Tokens are HS256 JWTs carrying the account id (``sub``), an expiry and a random
``jti``. The jti keeps two tokens minted in the same second for the same
account distinct, which the unique sessions.refresh_token column depends on.

Access and refresh tokens are signed with different secrets, so a leaked
access secret cannot mint refresh tokens and vice versa.
"""

import re
import secrets
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

import jwt

from auth.config import AuthConfig
from auth.exceptions import (
    InvalidDurationFormatError,
    TokenExpiredError,
    TokenInvalidError,
)
from utils.timezone import now_utc

ALGORITHM = "HS256"

_DURATION_RE = re.compile(r"^(\d+)([dhms])$")
_UNIT_MS = {
    "d": 24 * 60 * 60 * 1000,
    "h": 60 * 60 * 1000,
    "m": 60 * 1000,
    "s": 1000,
}


def parse_duration(spec: str) -> int:
    """Convert "7d" / "12h" / "15m" / "30s" to milliseconds.

    Raises:
        InvalidDurationFormatError: Any other suffix or a non-numeric magnitude.
    """
    match = _DURATION_RE.match(spec.strip()) if isinstance(spec, str) else None
    if match is None:
        raise InvalidDurationFormatError(f"Invalid duration format: {spec!r}")
    value, unit = match.groups()
    return int(value) * _UNIT_MS[unit]


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenService:
    """Signs and verifies the two token families."""

    def __init__(self, config: AuthConfig, access_secret: str, refresh_secret: str):
        if not access_secret or not refresh_secret:
            raise ValueError("Both access and refresh secrets are required")
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must use different secrets")

        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self._lifetimes = {
            TokenKind.ACCESS: timedelta(milliseconds=parse_duration(config.access_token_expires_in)),
            TokenKind.REFRESH: timedelta(milliseconds=parse_duration(config.refresh_token_expires_in)),
        }

    def lifetime(self, kind: TokenKind) -> timedelta:
        return self._lifetimes[kind]

    def expires_at(self, kind: TokenKind, now: datetime | None = None) -> datetime:
        """Expiry a token of this kind would get if issued at ``now``."""
        return (now or now_utc()) + self._lifetimes[kind]

    def issue(self, account_id: UUID, kind: TokenKind, now: datetime | None = None) -> str:
        claims = {
            "sub": str(account_id),
            "exp": self.expires_at(kind, now),
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(claims, self._secrets[kind], algorithm=ALGORITHM)

    def issue_access(self, account_id: UUID) -> str:
        return self.issue(account_id, TokenKind.ACCESS)

    def issue_refresh(self, account_id: UUID) -> str:
        return self.issue(account_id, TokenKind.REFRESH)

    def verify(self, token: str, kind: TokenKind) -> UUID:
        """Return the account id the token was issued for.

        Raises:
            TokenExpiredError: Signature valid, expiry passed.
            TokenInvalidError: Anything else wrong with the token.
        """
        try:
            claims = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise TokenInvalidError(f"Invalid token: {e}") from e

        try:
            return UUID(claims["sub"])
        except (TypeError, ValueError):
            raise TokenInvalidError("Invalid token subject")

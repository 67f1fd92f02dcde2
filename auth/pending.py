"""Email verification codes gating registration and login.

Per email: NONE -> PENDING -> USED | EXPIRED | SUPERSEDED.

Issuing a code supersedes whatever was pending for that email. Two concurrent
issues for the same email are last-writer-wins: both rows may survive, and
lookup always returns the newest, so only the latest code validates.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from auth.config import AuthConfig
from auth.hashing import CredentialHasher
from auth.store import AuthStore
from auth.types import PendingAuth
from utils.timezone import now_utc, to_utc

logger = logging.getLogger(__name__)


class VerificationFailure(str, Enum):
    """Why a code was rejected, in the order the checks run."""

    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"
    EXPIRED = "expired"
    INVALID_CODE = "invalid_code"


FAILURE_MESSAGES = {
    VerificationFailure.NOT_FOUND: "Code not found",
    VerificationFailure.ALREADY_USED: "Code already used",
    VerificationFailure.EXPIRED: "Code expired",
    VerificationFailure.INVALID_CODE: "Invalid code",
}


@dataclass
class VerificationResult:
    """Outcome of validate(). On success ``pending`` holds the consumed record."""

    success: bool
    failure: VerificationFailure | None = None
    pending: PendingAuth | None = None

    @property
    def message(self) -> str:
        if self.success:
            return "Code verified"
        return FAILURE_MESSAGES[self.failure]

    @property
    def password_hash(self) -> str | None:
        return self.pending.password_hash if self.pending else None

    @property
    def name(self) -> str | None:
        return self.pending.name if self.pending else None


class PendingAuthWorkflow:
    """Issues and validates one-time verification codes."""

    def __init__(self, store: AuthStore, hasher: CredentialHasher, config: AuthConfig):
        self._store = store
        self._hasher = hasher
        self._expiry = timedelta(minutes=config.verification_code_expiry_minutes)

    def issue(self, email: str, password: str, name: str) -> str:
        """Create a fresh challenge for the email and return the plaintext code.

        The password is hashed now and only committed to an account once the
        code is verified.
        """
        code = self._hasher.generate_code()
        code_hash = self._hasher.hash(code)
        password_hash = self._hasher.hash(password)

        now = now_utc()
        self._store.replace_pending_auth(
            email=email,
            name=name,
            code_hash=code_hash,
            password_hash=password_hash,
            created_at=now,
            expires_at=now + self._expiry,
        )
        logger.info(f"Verification code issued for {email}")
        return code

    def validate(self, email: str, code: str) -> VerificationResult:
        """Check a code. Every failure is terminal for this call.

        Checks run in a fixed order: missing, used, expired, wrong code.
        Expiry wins over a correct code.
        """
        pending = self._store.get_pending_auth(email)

        if pending is None:
            return VerificationResult(success=False, failure=VerificationFailure.NOT_FOUND)

        if pending.used_at is not None:
            return VerificationResult(success=False, failure=VerificationFailure.ALREADY_USED)

        if now_utc() > to_utc(pending.expires_at):
            return VerificationResult(success=False, failure=VerificationFailure.EXPIRED)

        if not self._hasher.verify(code, pending.code_hash):
            return VerificationResult(success=False, failure=VerificationFailure.INVALID_CODE)

        # Compare-and-set: a concurrent validate of the same code loses here.
        if not self._store.mark_pending_auth_used(pending.id, now_utc()):
            return VerificationResult(success=False, failure=VerificationFailure.ALREADY_USED)

        return VerificationResult(success=True, pending=pending)

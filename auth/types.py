"""Pydantic models for auth domain."""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator


# =============================================================================
# Persisted entities
# =============================================================================


class Account(BaseModel):
    """A registered identity, local-password-based and/or OAuth-linked."""

    id: UUID
    email: str
    password_hash: str | None = None  # None for OAuth-only accounts
    name: str
    avatar_url: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None


class PendingAuth(BaseModel):
    """An outstanding email-verification challenge."""

    id: UUID
    email: str
    name: str
    code_hash: str
    password_hash: str
    created_at: datetime
    expires_at: datetime
    used_at: datetime | None  # Required - fail closed, no default


class Session(BaseModel):
    """Server-side record backing the current refresh token."""

    id: UUID
    account_id: UUID
    refresh_token: str = Field(..., description="Most recently issued refresh token")
    refresh_expires_at: datetime
    client_ip: str
    user_agent: str
    created_at: datetime


class OAuthAccount(BaseModel):
    """Link between a provider identity and a local account."""

    id: UUID
    account_id: UUID
    provider: str
    provider_id: str


class AuthAction(str, Enum):
    """Actions recorded in the activity log."""

    REGISTER = "register"
    LOGIN = "login"


class LogStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class ActiveLog(BaseModel):
    """Append-only audit record of a register/login attempt."""

    id: UUID
    account_id: UUID
    action: AuthAction
    client_ip: str
    user_agent: str
    status: LogStatus
    reason: str | None = None
    created_at: datetime


# =============================================================================
# Request DTOs
# =============================================================================


def _check_password_policy(value: str) -> str:
    if not 8 <= len(value) <= 16:
        raise ValueError("Password must be between 8 and 16 characters")
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one digit")
    if not re.search(r"[^a-zA-Z0-9]", value):
        raise ValueError("Password must contain at least one special character")
    return value


Password = Annotated[str, AfterValidator(_check_password_policy)]


class _EmailRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class RegisterRequest(_EmailRequest):
    """POST /register body."""

    name: str = Field(..., min_length=2)
    password: Password


class LoginRequest(_EmailRequest):
    """POST /login body."""

    password: Password


class VerifyRequest(_EmailRequest):
    """POST /verify body."""

    code: str = Field(..., pattern=r"^[0-9]{6}$")


# =============================================================================
# Results passed between components
# =============================================================================


class AuthenticatedPrincipal(BaseModel):
    """Who is calling. Produced by the auth guard, passed explicitly to handlers."""

    account_id: UUID
    session_id: UUID


class IssuedTokens(BaseModel):
    """A freshly minted token pair and the session that backs the refresh token."""

    access_token: str
    refresh_token: str
    session: Session


class AuthenticatedAccount(BaseModel):
    """Account info returned after successful verification or OAuth login."""

    account: Account
    tokens: IssuedTokens
    is_new: bool


class OAuthProfile(BaseModel):
    """Identity data returned by a provider's profile endpoint."""

    provider_id: str
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None


class ProviderEmail(BaseModel):
    """One entry of a provider's email-list endpoint."""

    email: str
    primary: bool = False
    verified: bool = False


class AccountOverview(BaseModel):
    """Everything GET /me returns. Secrets are stripped."""

    account: Account
    sessions: list[Session]
    logs: list[ActiveLog]
    providers: list[OAuthAccount]

    def to_public(self) -> dict:
        """JSON-safe dict without password hash or refresh tokens."""
        return {
            "account": self.account.model_dump(mode="json", exclude={"password_hash"})
            | {"has_password": self.account.has_password},
            "sessions": [
                s.model_dump(mode="json", exclude={"refresh_token"}) for s in self.sessions
            ],
            "logs": [entry.model_dump(mode="json") for entry in self.logs],
            "providers": [p.model_dump(mode="json") for p in self.providers],
        }

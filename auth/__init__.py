"""Authentication and session modules."""

from auth.exceptions import (
    AuthError,
    InvalidTokenError,
    TokenInvalidError,
    TokenExpiredError,
    InvalidCredentialsError,
    AccountNotFoundError,
    NotAuthenticatedError,
    SessionNotFoundError,
    VerificationFailedError,
    AlreadyAuthenticatedError,
    EmailAlreadyRegisteredError,
    RateLimitedError,
    UpstreamProviderError,
    UnknownProviderError,
    InvalidDurationFormatError,
)
from auth.types import (
    Account,
    PendingAuth,
    Session,
    OAuthAccount,
    ActiveLog,
    AuthAction,
    LogStatus,
    AuthenticatedPrincipal,
    AuthenticatedAccount,
    IssuedTokens,
)
from auth.config import AuthConfig, RateLimitRule

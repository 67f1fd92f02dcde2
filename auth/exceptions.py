"""Typed exceptions for auth failures.

Core components raise these; only the HTTP boundary (auth/api.py, api/errors.py)
decides which status code each one becomes.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


# =============================================================================
# Authentication (credentials, tokens, sessions)
# =============================================================================


class InvalidTokenError(AuthError):
    """
    Token is invalid or expired.

    Callers that surface this to clients should not distinguish the subclasses.
    """


class TokenInvalidError(InvalidTokenError):
    """Bad signature, wrong token kind, or malformed token."""


class TokenExpiredError(InvalidTokenError):
    """Token signature is valid but its expiry has passed."""


class InvalidCredentialsError(AuthError):
    """Password does not match the stored hash."""


class AccountNotFoundError(AuthError):
    """
    Email not associated with any account.

    Login reports this as a plain 401, same as bad credentials.
    """


class NotAuthenticatedError(AuthError):
    """No usable access token was presented."""


class SessionNotFoundError(AuthError):
    """No session row backs the presented token (logged out or rotated away)."""


class VerificationFailedError(AuthError):
    """Verification code rejected. Carries the user-facing reason."""

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)


class AlreadyAuthenticatedError(AuthError):
    """Anonymous-only route called with a live access or refresh token."""


# =============================================================================
# Conflict / throttling
# =============================================================================


class EmailAlreadyRegisteredError(AuthError):
    """Registration attempted for an email that already has an account."""


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


# =============================================================================
# OAuth provider errors
# =============================================================================


class UpstreamProviderError(AuthError):
    """Base class for OAuth handshake failures.

    ``caller_fault`` separates problems with the callback request itself
    (400) from failures talking to the provider (500).
    """

    caller_fault = True


class UpstreamAuthError(UpstreamProviderError):
    """Provider redirected back with an ``error`` parameter."""


class MissingAuthorizationCodeError(UpstreamProviderError):
    """Callback arrived without an authorization code."""


class StateMismatchError(UpstreamProviderError):
    """Anti-forgery state cookie missing or different from the callback state."""


class EmailUnavailableError(UpstreamProviderError):
    """Provider gave no usable email, so no account can be matched or created."""


class UpstreamTokenExchangeError(UpstreamProviderError):
    """Authorization code could not be exchanged for a provider access token."""

    caller_fault = False


class UpstreamProfileFetchError(UpstreamProviderError):
    """Provider profile request failed."""

    caller_fault = False


class UnknownProviderError(AuthError):
    """OAuth provider name is not configured."""


# =============================================================================
# Configuration
# =============================================================================


class InvalidDurationFormatError(AuthError, ValueError):
    """Duration string is not ``<int>`` followed by one of d/h/m/s."""

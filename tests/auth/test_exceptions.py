"""Tests for auth/exceptions.py - Typed exceptions for auth failures."""

import pytest

from auth.exceptions import (
    AccountNotFoundError,
    AlreadyAuthenticatedError,
    AuthError,
    EmailAlreadyRegisteredError,
    EmailUnavailableError,
    InvalidCredentialsError,
    InvalidDurationFormatError,
    InvalidTokenError,
    MissingAuthorizationCodeError,
    NotAuthenticatedError,
    RateLimitedError,
    SessionNotFoundError,
    StateMismatchError,
    TokenExpiredError,
    TokenInvalidError,
    UnknownProviderError,
    UpstreamAuthError,
    UpstreamProfileFetchError,
    UpstreamProviderError,
    UpstreamTokenExchangeError,
    VerificationFailedError,
)


class TestExceptionInheritance:
    """All auth exceptions should inherit from AuthError."""

    @pytest.mark.parametrize(
        "exc_type",
        [
            InvalidTokenError,
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
        ],
    )
    def test_inherits_auth_error(self, exc_type):
        assert issubclass(exc_type, AuthError)

    def test_token_errors_share_base(self):
        assert issubclass(TokenExpiredError, InvalidTokenError)
        assert issubclass(TokenInvalidError, InvalidTokenError)

    def test_duration_error_is_value_error(self):
        assert issubclass(InvalidDurationFormatError, ValueError)


class TestRateLimitedError:
    """RateLimitedError should carry retry timing info."""

    def test_stores_retry_seconds(self):
        err = RateLimitedError(30)
        assert err.retry_after_seconds == 30

    def test_message_includes_seconds(self):
        assert "30" in str(RateLimitedError(30))


class TestVerificationFailedError:
    def test_carries_reason_and_message(self):
        err = VerificationFailedError("expired", "Code expired")
        assert err.reason == "expired"
        assert str(err) == "Code expired"


class TestUpstreamProviderFault:
    """caller_fault decides 400 vs 500."""

    @pytest.mark.parametrize(
        "exc_type",
        [UpstreamAuthError, MissingAuthorizationCodeError, StateMismatchError, EmailUnavailableError],
    )
    def test_caller_fault(self, exc_type):
        assert exc_type.caller_fault is True

    @pytest.mark.parametrize("exc_type", [UpstreamTokenExchangeError, UpstreamProfileFetchError])
    def test_provider_fault(self, exc_type):
        assert exc_type.caller_fault is False

"""Tests for auth/tokens.py - JWT issue/verify and duration parsing."""

from datetime import timedelta
from uuid import uuid4

import jwt
import pytest

from auth.config import AuthConfig
from auth.exceptions import InvalidDurationFormatError, TokenExpiredError, TokenInvalidError
from auth.tokens import TokenKind, TokenService, parse_duration
from utils.timezone import now_utc


class TestParseDuration:
    """Compact durations to milliseconds."""

    @pytest.mark.parametrize(
        "spec, expected",
        [
            ("7d", 7 * 24 * 60 * 60 * 1000),
            ("12h", 12 * 60 * 60 * 1000),
            ("15m", 15 * 60 * 1000),
            ("30s", 30 * 1000),
            ("0s", 0),
        ],
    )
    def test_valid(self, spec, expected):
        assert parse_duration(spec) == expected

    @pytest.mark.parametrize("spec", ["7w", "15", "m", "1.5h", "-1d", "", "ten minutes"])
    def test_invalid(self, spec):
        with pytest.raises(InvalidDurationFormatError):
            parse_duration(spec)


class TestTokenServiceConstruction:
    def test_requires_secrets(self, config):
        with pytest.raises(ValueError):
            TokenService(config, "", "refresh")

    def test_rejects_shared_secret(self, config):
        with pytest.raises(ValueError):
            TokenService(config, "same", "same")


class TestRoundTrip:
    """Issue then verify returns the account id."""

    @pytest.mark.parametrize("kind", [TokenKind.ACCESS, TokenKind.REFRESH])
    def test_round_trip(self, token_service, kind):
        account_id = uuid4()
        token = token_service.issue(account_id, kind)
        assert token_service.verify(token, kind) == account_id

    def test_convenience_issuers(self, token_service):
        account_id = uuid4()
        assert token_service.verify(token_service.issue_access(account_id), TokenKind.ACCESS) == account_id
        assert token_service.verify(token_service.issue_refresh(account_id), TokenKind.REFRESH) == account_id

    def test_tokens_are_unique(self, token_service):
        """Two tokens minted in the same second still differ."""
        account_id = uuid4()
        now = now_utc()
        assert token_service.issue(account_id, TokenKind.REFRESH, now) != token_service.issue(
            account_id, TokenKind.REFRESH, now
        )


class TestVerifyFailures:
    def test_expired(self, token_service):
        issued_at = now_utc() - timedelta(days=8)
        token = token_service.issue(uuid4(), TokenKind.REFRESH, issued_at)
        with pytest.raises(TokenExpiredError):
            token_service.verify(token, TokenKind.REFRESH)

    def test_access_expires_after_lifetime(self, token_service):
        issued_at = now_utc() - timedelta(minutes=16)
        token = token_service.issue(uuid4(), TokenKind.ACCESS, issued_at)
        with pytest.raises(TokenExpiredError):
            token_service.verify(token, TokenKind.ACCESS)

    def test_wrong_kind_rejected(self, token_service):
        """Access tokens are not refresh tokens (different secrets)."""
        token = token_service.issue(uuid4(), TokenKind.ACCESS)
        with pytest.raises(TokenInvalidError):
            token_service.verify(token, TokenKind.REFRESH)

    def test_garbage_rejected(self, token_service):
        with pytest.raises(TokenInvalidError):
            token_service.verify("not.a.jwt", TokenKind.ACCESS)

    def test_bad_subject_rejected(self, token_service):
        token = jwt.encode(
            {"sub": "not-a-uuid", "exp": now_utc() + timedelta(minutes=5)},
            "test-access-secret-0123456789abcdef",
            algorithm="HS256",
        )
        with pytest.raises(TokenInvalidError):
            token_service.verify(token, TokenKind.ACCESS)


class TestLifetimes:
    def test_from_config(self):
        service = TokenService(
            AuthConfig(access_token_expires_in="30s", refresh_token_expires_in="2h"),
            "access",
            "refresh",
        )
        assert service.lifetime(TokenKind.ACCESS) == timedelta(seconds=30)
        assert service.lifetime(TokenKind.REFRESH) == timedelta(hours=2)

    def test_expires_at(self, token_service):
        now = now_utc()
        assert token_service.expires_at(TokenKind.REFRESH, now) == now + timedelta(days=7)

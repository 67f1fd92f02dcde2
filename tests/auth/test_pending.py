"""Tests for auth/pending.py - verification code state machine."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from auth.pending import PendingAuthWorkflow, VerificationFailure

EMAIL = "ana@example.com"
T0 = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def workflow(store, hasher, config):
    return PendingAuthWorkflow(store, hasher, config)


@pytest.fixture
def issued_at_t0(workflow):
    """Issue a code for EMAIL at T0 and return it."""
    with patch("auth.pending.now_utc", return_value=T0):
        return workflow.issue(EMAIL, "Str0ng!pw", "Ana")


def _validate_at(workflow, when, code):
    with patch("auth.pending.now_utc", return_value=when):
        return workflow.validate(EMAIL, code)


class TestIssue:
    """issue() persists one hashed challenge per email."""

    def test_returns_six_digit_code(self, workflow):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        assert len(code) == 6 and code.isdigit()

    def test_stores_hashes_not_plaintext(self, workflow, store, hasher):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        record = store.get_pending_auth(EMAIL)
        assert record.code_hash != code
        assert hasher.verify(code, record.code_hash)
        assert hasher.verify("Str0ng!pw", record.password_hash)
        assert record.name == "Ana"
        assert record.used_at is None

    def test_expiry_is_fifteen_minutes(self, workflow, store, issued_at_t0):
        record = store.get_pending_auth(EMAIL)
        assert record.expires_at == T0 + timedelta(minutes=15)

    def test_second_issue_supersedes_first(self, workflow, store):
        first = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        second = workflow.issue(EMAIL, "Str0ng!pw", "Ana")

        assert len([p for p in store.pending.values() if p.email == EMAIL]) == 1
        if first != second:
            assert workflow.validate(EMAIL, first).failure == VerificationFailure.INVALID_CODE
        assert workflow.validate(EMAIL, second).success is True

    def test_newest_row_wins_when_concurrent_issues_both_insert(self, workflow, store):
        """Two racing issues can leave two rows; only the later code validates."""
        with patch("auth.pending.now_utc", return_value=T0):
            first = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        stale = store.get_pending_auth(EMAIL)
        with patch("auth.pending.now_utc", return_value=T0 + timedelta(seconds=1)):
            second = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        store.pending[stale.id] = stale

        later = T0 + timedelta(minutes=1)
        if first != second:
            assert _validate_at(workflow, later, first).failure == VerificationFailure.INVALID_CODE
        assert _validate_at(workflow, later, second).success is True

    def test_other_emails_untouched(self, workflow, store):
        workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        workflow.issue("bob@example.com", "Str0ng!pw", "Bob")
        assert store.get_pending_auth(EMAIL) is not None
        assert store.get_pending_auth("bob@example.com") is not None


class TestValidate:
    """validate() outcomes in priority order."""

    def test_success_returns_captured_data(self, workflow, hasher):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        result = workflow.validate(EMAIL, code)

        assert result.success is True
        assert result.failure is None
        assert result.name == "Ana"
        assert hasher.verify("Str0ng!pw", result.password_hash)

    def test_not_found(self, workflow):
        result = workflow.validate(EMAIL, "123456")
        assert result.success is False
        assert result.failure == VerificationFailure.NOT_FOUND
        assert result.message == "Code not found"

    def test_invalid_code(self, workflow):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        wrong = "100000" if code != "100000" else "100001"
        result = workflow.validate(EMAIL, wrong)
        assert result.failure == VerificationFailure.INVALID_CODE
        assert result.message == "Invalid code"

    def test_single_use(self, workflow):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        assert workflow.validate(EMAIL, code).success is True

        second = workflow.validate(EMAIL, code)
        assert second.success is False
        assert second.failure == VerificationFailure.ALREADY_USED
        assert second.message == "Code already used"

    def test_used_wins_over_wrong_code(self, workflow):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        workflow.validate(EMAIL, code)
        assert workflow.validate(EMAIL, "000000").failure == VerificationFailure.ALREADY_USED

    def test_lost_mark_used_race_reports_already_used(self, workflow, store):
        code = workflow.issue(EMAIL, "Str0ng!pw", "Ana")
        with patch.object(store, "mark_pending_auth_used", return_value=False):
            result = workflow.validate(EMAIL, code)
        assert result.failure == VerificationFailure.ALREADY_USED


class TestExpiryBoundary:
    """Expired iff now > expires_at, whatever the code."""

    def test_valid_at_exact_expiry(self, workflow, issued_at_t0):
        result = _validate_at(workflow, T0 + timedelta(minutes=15), issued_at_t0)
        assert result.success is True

    def test_expired_one_ms_after(self, workflow, issued_at_t0):
        result = _validate_at(workflow, T0 + timedelta(minutes=15, milliseconds=1), issued_at_t0)
        assert result.failure == VerificationFailure.EXPIRED
        assert result.message == "Code expired"

    def test_valid_one_ms_before(self, workflow, issued_at_t0):
        result = _validate_at(workflow, T0 + timedelta(minutes=15) - timedelta(milliseconds=1), issued_at_t0)
        assert result.success is True

    def test_expired_wins_over_wrong_code(self, workflow, issued_at_t0):
        wrong = "100000" if issued_at_t0 != "100000" else "100001"
        result = _validate_at(workflow, T0 + timedelta(hours=1), wrong)
        assert result.failure == VerificationFailure.EXPIRED

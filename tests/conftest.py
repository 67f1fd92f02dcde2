"""Shared test fixtures for the auth service test suite.

Infrastructure is replaced in-process: MemoryAuthStore for PostgreSQL,
FakeValkey for Valkey, Mock(spec=EmailGatewayClient) for the email gateway
and FakeOAuthProvider for Google/GitHub.
"""

import re
import threading
from datetime import datetime
from unittest.mock import Mock
from urllib.parse import urlencode
from uuid import UUID, uuid4

import pytest

import clients.vault_client as vault_module
from auth.config import AuthConfig
from auth.hashing import CredentialHasher
from auth.tokens import TokenService
from auth.types import (
    Account,
    ActiveLog,
    AuthAction,
    LogStatus,
    OAuthAccount,
    OAuthProfile,
    PendingAuth,
    ProviderEmail,
    Session,
)
from clients.email_client import EmailGatewayClient
from clients.oauth_client import ProfileFetchError, TokenExchangeError
from utils.timezone import now_utc

ACCESS_SECRET = "test-access-secret-0123456789abcdef"
REFRESH_SECRET = "test-refresh-secret-fedcba9876543210"


# =============================================================================
# TEST DOUBLES
# =============================================================================


class ConstraintViolation(Exception):
    """Unique constraint would be broken."""


class MemoryAuthStore:
    """Dict-backed AuthStore standing in for PostgreSQL.

    Mirrors the uniqueness constraints of sql/schema.sql. One RLock guards
    every operation, giving the per-call atomicity of the PostgreSQL store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.accounts: dict[UUID, Account] = {}
        self.pending: dict[UUID, PendingAuth] = {}
        self.sessions: dict[UUID, Session] = {}
        self.oauth_accounts: dict[UUID, OAuthAccount] = {}
        self.active_logs: list[ActiveLog] = []

    # ----- accounts -----

    def get_account_by_email(self, email: str) -> Account | None:
        email = email.lower()
        with self._lock:
            for account in self.accounts.values():
                if account.email == email:
                    return account.model_copy()
        return None

    def get_account_by_id(self, account_id: UUID) -> Account | None:
        with self._lock:
            account = self.accounts.get(account_id)
            return account.model_copy() if account else None

    def create_account(
        self,
        email: str,
        name: str,
        password_hash: str | None = None,
        avatar_url: str | None = None,
    ) -> Account:
        email = email.lower()
        with self._lock:
            if any(a.email == email for a in self.accounts.values()):
                raise ConstraintViolation(f"Account already exists for {email}")
            account = Account(
                id=uuid4(),
                email=email,
                password_hash=password_hash,
                name=name,
                avatar_url=avatar_url,
                created_at=now_utc(),
            )
            self.accounts[account.id] = account
            return account.model_copy()

    def set_account_password(self, account_id: UUID, password_hash: str) -> bool:
        with self._lock:
            account = self.accounts.get(account_id)
            if account is None:
                return False
            self.accounts[account_id] = account.model_copy(update={"password_hash": password_hash})
            return True

    # ----- pending auth -----

    def replace_pending_auth(
        self,
        email: str,
        name: str,
        code_hash: str,
        password_hash: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> PendingAuth:
        with self._lock:
            for pending_id in [p.id for p in self.pending.values() if p.email == email]:
                del self.pending[pending_id]
            record = PendingAuth(
                id=uuid4(),
                email=email,
                name=name,
                code_hash=code_hash,
                password_hash=password_hash,
                created_at=created_at,
                expires_at=expires_at,
                used_at=None,
            )
            self.pending[record.id] = record
            return record.model_copy()

    def get_pending_auth(self, email: str) -> PendingAuth | None:
        with self._lock:
            matches = [p for p in self.pending.values() if p.email == email]
            if not matches:
                return None
            return max(matches, key=lambda p: p.created_at).model_copy()

    def mark_pending_auth_used(self, pending_id: UUID, used_at: datetime) -> bool:
        with self._lock:
            record = self.pending.get(pending_id)
            if record is None or record.used_at is not None:
                return False
            self.pending[pending_id] = record.model_copy(update={"used_at": used_at})
            return True

    # ----- sessions -----

    def create_session(
        self,
        account_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        client_ip: str,
        user_agent: str,
    ) -> Session:
        with self._lock:
            if any(s.refresh_token == refresh_token for s in self.sessions.values()):
                raise ConstraintViolation("Duplicate refresh token")
            session = Session(
                id=uuid4(),
                account_id=account_id,
                refresh_token=refresh_token,
                refresh_expires_at=refresh_expires_at,
                client_ip=client_ip,
                user_agent=user_agent,
                created_at=now_utc(),
            )
            self.sessions[session.id] = session
            return session.model_copy()

    def get_session_by_refresh_token(self, refresh_token: str) -> Session | None:
        with self._lock:
            for session in self.sessions.values():
                if session.refresh_token == refresh_token:
                    return session.model_copy()
        return None

    def get_latest_session(self, account_id: UUID) -> Session | None:
        sessions = self.list_sessions(account_id)
        return sessions[0] if sessions else None

    def list_sessions(self, account_id: UUID) -> list[Session]:
        with self._lock:
            owned = [s.model_copy() for s in self.sessions.values() if s.account_id == account_id]
        # Insertion order is creation order; newest first.
        owned.reverse()
        return owned

    def update_session_refresh_token(
        self,
        session_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        expected_refresh_token: str | None = None,
    ) -> Session | None:
        with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                return None
            if expected_refresh_token is not None and session.refresh_token != expected_refresh_token:
                return None
            if any(
                s.refresh_token == refresh_token and s.id != session_id
                for s in self.sessions.values()
            ):
                raise ConstraintViolation("Duplicate refresh token")
            updated = session.model_copy(
                update={"refresh_token": refresh_token, "refresh_expires_at": refresh_expires_at}
            )
            self.sessions[session_id] = updated
            return updated.model_copy()

    def delete_session(self, session_id: UUID) -> bool:
        with self._lock:
            return self.sessions.pop(session_id, None) is not None

    # ----- oauth links -----

    def get_oauth_account(self, provider: str, provider_id: str) -> OAuthAccount | None:
        with self._lock:
            for link in self.oauth_accounts.values():
                if link.provider == provider and link.provider_id == provider_id:
                    return link.model_copy()
        return None

    def create_oauth_account(self, account_id: UUID, provider: str, provider_id: str) -> OAuthAccount:
        with self._lock:
            if self.get_oauth_account(provider, provider_id) is not None:
                raise ConstraintViolation(f"{provider} identity {provider_id} already linked")
            link = OAuthAccount(
                id=uuid4(),
                account_id=account_id,
                provider=provider,
                provider_id=provider_id,
            )
            self.oauth_accounts[link.id] = link
            return link.model_copy()

    def list_oauth_accounts(self, account_id: UUID) -> list[OAuthAccount]:
        with self._lock:
            return [
                link.model_copy()
                for link in self.oauth_accounts.values()
                if link.account_id == account_id
            ]

    # ----- activity log -----

    def append_active_log(
        self,
        account_id: UUID,
        action: AuthAction,
        client_ip: str,
        user_agent: str,
        status: LogStatus,
        reason: str | None = None,
    ) -> ActiveLog:
        entry = ActiveLog(
            id=uuid4(),
            account_id=account_id,
            action=action,
            client_ip=client_ip,
            user_agent=user_agent,
            status=status,
            reason=reason,
            created_at=now_utc(),
        )
        with self._lock:
            self.active_logs.append(entry)
        return entry.model_copy()

    def list_active_logs(self, account_id: UUID, limit: int = 100) -> list[ActiveLog]:
        with self._lock:
            owned = [e.model_copy() for e in self.active_logs if e.account_id == account_id]
        owned.reverse()
        return owned[:limit]


class FakeValkey:
    """Valkey stand-in with the counter/TTL semantics RateLimiter relies on.

    Time only moves when advance() is called.
    """

    def __init__(self):
        self.now_ms = 0
        self._values: dict[str, int] = {}
        self._expires_at: dict[str, int] = {}

    def advance(self, ms: int) -> None:
        self.now_ms += ms

    def _purge(self, key: str) -> None:
        expires_at = self._expires_at.get(key)
        if expires_at is not None and expires_at <= self.now_ms:
            self._values.pop(key, None)
            self._expires_at.pop(key, None)

    def ping(self) -> bool:
        return True

    def incr(self, key: str) -> int:
        self._purge(key)
        self._values[key] = self._values.get(key, 0) + 1
        return self._values[key]

    def pexpire(self, key: str, milliseconds: int) -> bool:
        self._purge(key)
        if key not in self._values:
            return False
        self._expires_at[key] = self.now_ms + milliseconds
        return True

    def pttl(self, key: str) -> int:
        self._purge(key)
        if key not in self._values:
            return -2
        if key not in self._expires_at:
            return -1
        return self._expires_at[key] - self.now_ms

    def close(self) -> None:
        pass


class FakeOAuthProvider:
    """Scriptable OAuthProvider. Set the attributes to shape each call's result."""

    def __init__(self, name: str, display_name: str):
        self.name = name
        self.display_name = display_name
        self.access_token = f"{name}-access-token"
        self.profile = OAuthProfile(
            provider_id="1001",
            email=f"person@{name}.example.com",
            name="Provider Person",
            avatar_url=f"https://{name}.example.com/avatar.png",
        )
        self.emails: list[ProviderEmail] = []
        self.exchange_error: Exception | None = None
        self.profile_error: Exception | None = None
        self.emails_error: Exception | None = None
        self.exchanged_codes: list[str] = []

    def authorization_url(self, state: str) -> str:
        return f"https://{self.name}.example.com/authorize?{urlencode({'state': state})}"

    def exchange_code(self, code: str) -> str:
        self.exchanged_codes.append(code)
        if self.exchange_error:
            raise self.exchange_error
        return self.access_token

    def fetch_profile(self, access_token: str) -> OAuthProfile:
        if self.profile_error:
            raise self.profile_error
        return self.profile

    def fetch_emails(self, access_token: str) -> list[ProviderEmail]:
        if self.emails_error:
            raise self.emails_error
        return self.emails


# =============================================================================
# GLOBAL STATE
# =============================================================================


@pytest.fixture(autouse=True)
def reset_vault_cache():
    """No test may see secrets cached by another."""
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


# =============================================================================
# CONFIG & PRIMITIVES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Test config: cheapest bcrypt cost, test environment."""
    return AuthConfig(bcrypt_rounds=4, environment="test")


@pytest.fixture
def hasher(config) -> CredentialHasher:
    return CredentialHasher(rounds=config.bcrypt_rounds)


@pytest.fixture
def token_service(config) -> TokenService:
    return TokenService(config, ACCESS_SECRET, REFRESH_SECRET)


# =============================================================================
# INFRASTRUCTURE DOUBLES
# =============================================================================


@pytest.fixture
def store() -> MemoryAuthStore:
    return MemoryAuthStore()


@pytest.fixture
def valkey() -> FakeValkey:
    return FakeValkey()


@pytest.fixture
def mock_email_client():
    """Mock email client - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send_verification_code.return_value = None
    return mock


@pytest.fixture
def sent_code(mock_email_client):
    """Returns the code from the most recent verification email."""

    def _latest() -> str:
        call = mock_email_client.send_verification_code.call_args
        code = call.kwargs["code"]
        assert re.fullmatch(r"[0-9]{6}", code)
        return code

    return _latest


@pytest.fixture
def google_provider() -> FakeOAuthProvider:
    return FakeOAuthProvider("google", "Google")


@pytest.fixture
def github_provider() -> FakeOAuthProvider:
    return FakeOAuthProvider("github", "GitHub")


@pytest.fixture
def providers(google_provider, github_provider) -> dict:
    return {"google": google_provider, "github": github_provider}


@pytest.fixture
def provider_errors():
    """Client-layer exception classes, for scripting FakeOAuthProvider failures."""
    return {"exchange": TokenExchangeError, "profile": ProfileFetchError}


# =============================================================================
# WIRED COMPONENTS
# =============================================================================


@pytest.fixture
def components(config, store, valkey, mock_email_client, providers):
    """Full service graph over the in-process doubles."""
    from main import build_components

    return build_components(
        config=config,
        store=store,
        valkey=valkey,
        email_client=mock_email_client,
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        providers=providers,
    )


@pytest.fixture
def auth_service(components):
    return components.auth_service


@pytest.fixture
def oauth_linker(components):
    return components.oauth_linker


@pytest.fixture
def app(components):
    from main import create_app

    return create_app(components)


@pytest.fixture
def client(app):
    """TestClient over the full app. Server errors become 500 responses."""
    from fastapi.testclient import TestClient

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

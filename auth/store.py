"""Persistence interface used by the auth core.

Implemented by auth.database.AuthDatabase (PostgreSQL); the test suite
substitutes an in-process store.

Single-row writes are atomic. Multi-step sequences are only atomic where a
method says so.
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from auth.types import (
    Account,
    ActiveLog,
    AuthAction,
    LogStatus,
    OAuthAccount,
    PendingAuth,
    Session,
)


class AuthStore(Protocol):
    # ----- accounts -----

    def get_account_by_email(self, email: str) -> Account | None: ...

    def get_account_by_id(self, account_id: UUID) -> Account | None: ...

    def create_account(
        self,
        email: str,
        name: str,
        password_hash: str | None = None,
        avatar_url: str | None = None,
    ) -> Account: ...

    def set_account_password(self, account_id: UUID, password_hash: str) -> bool: ...

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
        """Delete every pending record for the email and insert the new one, atomically."""
        ...

    def get_pending_auth(self, email: str) -> PendingAuth | None:
        """Most recent pending record for the email."""
        ...

    def mark_pending_auth_used(self, pending_id: UUID, used_at: datetime) -> bool:
        """Set used_at only if still unset. False if already used or missing."""
        ...

    # ----- sessions -----

    def create_session(
        self,
        account_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        client_ip: str,
        user_agent: str,
    ) -> Session: ...

    def get_session_by_refresh_token(self, refresh_token: str) -> Session | None: ...

    def get_latest_session(self, account_id: UUID) -> Session | None: ...

    def list_sessions(self, account_id: UUID) -> list[Session]: ...

    def update_session_refresh_token(
        self,
        session_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        expected_refresh_token: str | None = None,
    ) -> Session | None:
        """In-place rotation. With expected_refresh_token this is a compare-and-swap."""
        ...

    def delete_session(self, session_id: UUID) -> bool: ...

    # ----- oauth links -----

    def get_oauth_account(self, provider: str, provider_id: str) -> OAuthAccount | None: ...

    def create_oauth_account(
        self, account_id: UUID, provider: str, provider_id: str
    ) -> OAuthAccount: ...

    def list_oauth_accounts(self, account_id: UUID) -> list[OAuthAccount]: ...

    # ----- activity log -----

    def append_active_log(
        self,
        account_id: UUID,
        action: AuthAction,
        client_ip: str,
        user_agent: str,
        status: LogStatus,
        reason: str | None = None,
    ) -> ActiveLog: ...

    def list_active_logs(self, account_id: UUID, limit: int = 100) -> list[ActiveLog]: ...

"""PostgreSQL implementation of the auth store.

Tables: accounts, pending_auth, sessions, oauth_accounts, active_logs
(see sql/schema.sql). Every method is a single statement, so each call is
atomic on its own; nothing here spans a transaction.
"""

from datetime import datetime
from uuid import UUID

from clients.postgres_client import PostgresClient
from auth.types import (
    Account,
    ActiveLog,
    AuthAction,
    LogStatus,
    OAuthAccount,
    PendingAuth,
    Session,
)

_ACCOUNT_COLUMNS = "id, email, password_hash, name, avatar_url, created_at"
_PENDING_COLUMNS = "id, email, name, code_hash, password_hash, created_at, expires_at, used_at"
_SESSION_COLUMNS = (
    "id, account_id, refresh_token, refresh_expires_at, client_ip, user_agent, created_at"
)
_OAUTH_COLUMNS = "id, account_id, provider, provider_id"
_LOG_COLUMNS = "id, account_id, action, client_ip, user_agent, status, reason, created_at"


class AuthDatabase:
    """Database operations for authentication."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_account_by_email(self, email: str) -> Account | None:
        """Find account by email (case-insensitive)."""
        row = self._db.execute_single(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE email = lower(%s)",
            (email,),
        )
        return Account.model_validate(row) if row else None

    def get_account_by_id(self, account_id: UUID) -> Account | None:
        row = self._db.execute_single(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = %s",
            (account_id,),
        )
        return Account.model_validate(row) if row else None

    def create_account(
        self,
        email: str,
        name: str,
        password_hash: str | None = None,
        avatar_url: str | None = None,
    ) -> Account:
        """Create new account with email (lowercased)."""
        rows = self._db.execute_returning(
            f"""INSERT INTO accounts (email, password_hash, name, avatar_url)
                VALUES (lower(%s), %s, %s, %s)
                RETURNING {_ACCOUNT_COLUMNS}""",
            (email, password_hash, name, avatar_url),
        )
        return Account.model_validate(rows[0])

    def set_account_password(self, account_id: UUID, password_hash: str) -> bool:
        """Store a password hash. Returns False if the account is gone."""
        rows = self._db.execute_returning(
            "UPDATE accounts SET password_hash = %s WHERE id = %s RETURNING id",
            (password_hash, account_id),
        )
        return len(rows) > 0

    # =========================================================================
    # Pending auth
    # =========================================================================

    def replace_pending_auth(
        self,
        email: str,
        name: str,
        code_hash: str,
        password_hash: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> PendingAuth:
        """Supersede any pending record for the email with a new one.

        Delete and insert run as one statement. email is not unique, so two
        concurrent calls can still both insert; get_pending_auth returns the
        newest row.
        """
        rows = self._db.execute_returning(
            f"""WITH superseded AS (
                    DELETE FROM pending_auth WHERE email = %s
                )
                INSERT INTO pending_auth
                    (email, name, code_hash, password_hash, created_at, expires_at)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {_PENDING_COLUMNS}""",
            (email, email, name, code_hash, password_hash, created_at, expires_at),
        )
        return PendingAuth.model_validate(rows[0])

    def get_pending_auth(self, email: str) -> PendingAuth | None:
        row = self._db.execute_single(
            f"""SELECT {_PENDING_COLUMNS} FROM pending_auth
                WHERE email = %s
                ORDER BY created_at DESC
                LIMIT 1""",
            (email,),
        )
        return PendingAuth.model_validate(row) if row else None

    def mark_pending_auth_used(self, pending_id: UUID, used_at: datetime) -> bool:
        """Mark used only if not already used. False means another caller won."""
        rows = self._db.execute_returning(
            """UPDATE pending_auth SET used_at = %s
               WHERE id = %s AND used_at IS NULL
               RETURNING id""",
            (used_at, pending_id),
        )
        return len(rows) > 0

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(
        self,
        account_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        client_ip: str,
        user_agent: str,
    ) -> Session:
        rows = self._db.execute_returning(
            f"""INSERT INTO sessions
                    (account_id, refresh_token, refresh_expires_at, client_ip, user_agent)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_SESSION_COLUMNS}""",
            (account_id, refresh_token, refresh_expires_at, client_ip, user_agent),
        )
        return Session.model_validate(rows[0])

    def get_session_by_refresh_token(self, refresh_token: str) -> Session | None:
        row = self._db.execute_single(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE refresh_token = %s",
            (refresh_token,),
        )
        return Session.model_validate(row) if row else None

    def get_latest_session(self, account_id: UUID) -> Session | None:
        row = self._db.execute_single(
            f"""SELECT {_SESSION_COLUMNS} FROM sessions
                WHERE account_id = %s
                ORDER BY created_at DESC
                LIMIT 1""",
            (account_id,),
        )
        return Session.model_validate(row) if row else None

    def list_sessions(self, account_id: UUID) -> list[Session]:
        rows = self._db.execute(
            f"""SELECT {_SESSION_COLUMNS} FROM sessions
                WHERE account_id = %s
                ORDER BY created_at DESC""",
            (account_id,),
        )
        return [Session.model_validate(row) for row in rows]

    def update_session_refresh_token(
        self,
        session_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        expected_refresh_token: str | None = None,
    ) -> Session | None:
        """Rotate the refresh token in place.

        With expected_refresh_token the row only changes if it still holds
        that token; None means the session is gone or already rotated.
        """
        if expected_refresh_token is None:
            rows = self._db.execute_returning(
                f"""UPDATE sessions
                    SET refresh_token = %s, refresh_expires_at = %s
                    WHERE id = %s
                    RETURNING {_SESSION_COLUMNS}""",
                (refresh_token, refresh_expires_at, session_id),
            )
        else:
            rows = self._db.execute_returning(
                f"""UPDATE sessions
                    SET refresh_token = %s, refresh_expires_at = %s
                    WHERE id = %s AND refresh_token = %s
                    RETURNING {_SESSION_COLUMNS}""",
                (refresh_token, refresh_expires_at, session_id, expected_refresh_token),
            )
        return Session.model_validate(rows[0]) if rows else None

    def delete_session(self, session_id: UUID) -> bool:
        rows = self._db.execute_returning(
            "DELETE FROM sessions WHERE id = %s RETURNING id",
            (session_id,),
        )
        return len(rows) > 0

    # =========================================================================
    # OAuth links
    # =========================================================================

    def get_oauth_account(self, provider: str, provider_id: str) -> OAuthAccount | None:
        row = self._db.execute_single(
            f"""SELECT {_OAUTH_COLUMNS} FROM oauth_accounts
                WHERE provider = %s AND provider_id = %s""",
            (provider, provider_id),
        )
        return OAuthAccount.model_validate(row) if row else None

    def create_oauth_account(self, account_id: UUID, provider: str, provider_id: str) -> OAuthAccount:
        rows = self._db.execute_returning(
            f"""INSERT INTO oauth_accounts (account_id, provider, provider_id)
                VALUES (%s, %s, %s)
                RETURNING {_OAUTH_COLUMNS}""",
            (account_id, provider, provider_id),
        )
        return OAuthAccount.model_validate(rows[0])

    def list_oauth_accounts(self, account_id: UUID) -> list[OAuthAccount]:
        rows = self._db.execute(
            f"SELECT {_OAUTH_COLUMNS} FROM oauth_accounts WHERE account_id = %s ORDER BY provider",
            (account_id,),
        )
        return [OAuthAccount.model_validate(row) for row in rows]

    # =========================================================================
    # Activity log (append-only)
    # =========================================================================

    def append_active_log(
        self,
        account_id: UUID,
        action: AuthAction,
        client_ip: str,
        user_agent: str,
        status: LogStatus,
        reason: str | None = None,
    ) -> ActiveLog:
        rows = self._db.execute_returning(
            f"""INSERT INTO active_logs
                    (account_id, action, client_ip, user_agent, status, reason)
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING {_LOG_COLUMNS}""",
            (account_id, action.value, client_ip, user_agent, status.value, reason),
        )
        return ActiveLog.model_validate(rows[0])

    def list_active_logs(self, account_id: UUID, limit: int = 100) -> list[ActiveLog]:
        rows = self._db.execute(
            f"""SELECT {_LOG_COLUMNS} FROM active_logs
                WHERE account_id = %s
                ORDER BY created_at DESC
                LIMIT %s""",
            (account_id, limit),
        )
        return [ActiveLog.model_validate(row) for row in rows]

"""Session rows backing refresh tokens.

A session always stores the most recently issued refresh token for it.
Rotation overwrites the token in place, so a superseded token can no longer
be found and is dead without a revocation list.
"""

import logging
from datetime import datetime
from uuid import UUID

from auth.exceptions import SessionNotFoundError
from auth.store import AuthStore
from auth.tokens import TokenKind, TokenService
from auth.types import IssuedTokens, Session
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SessionManager:
    """Creates, rotates, looks up and deletes sessions."""

    def __init__(self, store: AuthStore, token_service: TokenService):
        self._store = store
        self._tokens = token_service

    def create(
        self,
        account_id: UUID,
        refresh_token: str,
        refresh_expires_at: datetime,
        client_ip: str,
        user_agent: str,
    ) -> Session:
        """Insert a new session row."""
        session = self._store.create_session(
            account_id=account_id,
            refresh_token=refresh_token,
            refresh_expires_at=refresh_expires_at,
            client_ip=client_ip,
            user_agent=user_agent,
        )
        logger.info(f"Session {session.id} created for account {account_id}")
        return session

    def issue_for_account(self, account_id: UUID, client_ip: str, user_agent: str) -> IssuedTokens:
        """Mint an access/refresh pair and persist a session for the refresh token."""
        now = now_utc()
        refresh_token = self._tokens.issue(account_id, TokenKind.REFRESH, now)
        session = self.create(
            account_id=account_id,
            refresh_token=refresh_token,
            refresh_expires_at=self._tokens.expires_at(TokenKind.REFRESH, now),
            client_ip=client_ip,
            user_agent=user_agent,
        )
        return IssuedTokens(
            access_token=self._tokens.issue(account_id, TokenKind.ACCESS, now),
            refresh_token=refresh_token,
            session=session,
        )

    def rotate(
        self,
        session_id: UUID,
        new_refresh_token: str,
        new_expires_at: datetime,
        expected_refresh_token: str | None = None,
    ) -> Session:
        """Replace the session's refresh token in place.

        When expected_refresh_token is given the update only applies if the
        row still holds it, so two refreshes racing with the same token
        cannot both succeed.

        Raises:
            SessionNotFoundError: Row gone, or already rotated by someone else.
        """
        session = self._store.update_session_refresh_token(
            session_id=session_id,
            refresh_token=new_refresh_token,
            refresh_expires_at=new_expires_at,
            expected_refresh_token=expected_refresh_token,
        )
        if session is None:
            logger.warning(f"Rotation of session {session_id} lost: session gone or already rotated")
            raise SessionNotFoundError("Session not found")
        return session

    def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        return self._store.get_session_by_refresh_token(refresh_token)

    def find_by_account_id(self, account_id: UUID) -> Session | None:
        """Most recent session for the account."""
        return self._store.get_latest_session(account_id)

    def list_for_account(self, account_id: UUID) -> list[Session]:
        return self._store.list_sessions(account_id)

    def destroy(self, session_id: UUID) -> bool:
        """Hard delete (logout). Safe to call for a session that is already gone."""
        deleted = self._store.delete_session(session_id)
        if deleted:
            logger.info(f"Session {session_id} deleted")
        return deleted

"""Authentication service - orchestrates the verification-code auth flow.

register/login only ever send a code; an account is created (or a session
opened) when the code is verified.
"""

import logging
from dataclasses import dataclass

from auth.config import AuthConfig
from auth.exceptions import (
    AccountNotFoundError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    SessionNotFoundError,
    VerificationFailedError,
)
from auth.hashing import CredentialHasher
from auth.pending import PendingAuthWorkflow
from auth.security_logger import SecurityLogger
from auth.session import SessionManager
from auth.store import AuthStore
from auth.tokens import TokenKind, TokenService
from auth.types import (
    AccountOverview,
    AuthAction,
    AuthenticatedAccount,
    AuthenticatedPrincipal,
    IssuedTokens,
    LogStatus,
)
from clients.email_client import EmailGatewayClient

logger = logging.getLogger(__name__)


@dataclass
class CodeSent:
    """Result of register/login: a code went out to this address."""

    email: str
    expires_in_minutes: int


class AuthService:
    """Orchestrates verification-code authentication.

    Handles:
    - Registration and login (code issue + email)
    - Code verification and account creation
    - Refresh-token rotation
    - Logout and account overview
    """

    def __init__(
        self,
        config: AuthConfig,
        store: AuthStore,
        hasher: CredentialHasher,
        token_service: TokenService,
        pending: PendingAuthWorkflow,
        session_manager: SessionManager,
        email_client: EmailGatewayClient,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._store = store
        self._hasher = hasher
        self._tokens = token_service
        self._pending = pending
        self._session_manager = session_manager
        self._email_client = email_client
        self._security_logger = security_logger

    def _send_code(self, email: str, password: str, name: str) -> CodeSent:
        code = self._pending.issue(email=email, password=password, name=name)

        # May raise EmailGatewayError; the pending record stays and a retry supersedes it.
        self._email_client.send_verification_code(
            email=email,
            code=code,
            app_name=self._config.app_name,
            expiry_minutes=self._config.verification_code_expiry_minutes,
        )
        return CodeSent(email=email, expires_in_minutes=self._config.verification_code_expiry_minutes)

    def register(
        self,
        email: str,
        password: str,
        name: str,
        client_ip: str = "unknown",
        user_agent: str = "unknown",
    ) -> CodeSent:
        """Send a verification code for a new account.

        Raises:
            EmailAlreadyRegisteredError: An account already uses this email.
            EmailGatewayError: Code could not be sent.
        """
        if self._store.get_account_by_email(email) is not None:
            logger.info(f"Registration refused for existing email from {client_ip}")
            raise EmailAlreadyRegisteredError("Email already registered")

        return self._send_code(email, password, name)

    def login(
        self,
        email: str,
        password: str,
        client_ip: str = "unknown",
        user_agent: str = "unknown",
    ) -> CodeSent:
        """Check credentials and send a verification code.

        An account without a password (created through OAuth) gets a code
        without comparison; the password becomes its password once verified.

        Raises:
            AccountNotFoundError: No account for this email.
            InvalidCredentialsError: Password does not match.
            EmailGatewayError: Code could not be sent.
        """
        account = self._store.get_account_by_email(email)
        if account is None:
            raise AccountNotFoundError("User not found")

        if account.has_password and not self._hasher.verify(password, account.password_hash):
            self._security_logger.log(
                AuthAction.LOGIN,
                account_id=account.id,
                client_ip=client_ip,
                user_agent=user_agent,
                status=LogStatus.FAILURE,
                reason="Invalid credentials",
            )
            raise InvalidCredentialsError("Invalid credentials")

        return self._send_code(email, password, account.name)

    def verify(
        self,
        email: str,
        code: str,
        client_ip: str = "unknown",
        user_agent: str = "unknown",
    ) -> AuthenticatedAccount:
        """Consume a code and open a session, creating the account on first use.

        Raises:
            VerificationFailedError: Code missing, used, expired or wrong.
        """
        result = self._pending.validate(email, code)
        if not result.success:
            logger.info(f"Verification failed ({result.failure.value}) from {client_ip}")
            raise VerificationFailedError(result.failure.value, result.message)

        account = self._store.get_account_by_email(email)
        is_new = account is None

        if is_new:
            account = self._store.create_account(
                email=email,
                name=email.split("@")[0],
                password_hash=result.password_hash,
            )
            logger.info(f"Account {account.id} created")
        elif not account.has_password and result.password_hash:
            self._store.set_account_password(account.id, result.password_hash)
            account = account.model_copy(update={"password_hash": result.password_hash})
            logger.info(f"Password set for account {account.id}")

        tokens = self._session_manager.issue_for_account(account.id, client_ip, user_agent)

        self._security_logger.log(
            AuthAction.REGISTER if is_new else AuthAction.LOGIN,
            account_id=account.id,
            client_ip=client_ip,
            user_agent=user_agent,
            status=LogStatus.SUCCESS,
        )

        return AuthenticatedAccount(account=account, tokens=tokens, is_new=is_new)

    def refresh(
        self,
        refresh_token: str | None,
        principal: AuthenticatedPrincipal | None = None,
    ) -> IssuedTokens:
        """Rotate the session's refresh token and mint a new access token.

        When principal is given the refresh token must belong to the same account.

        Raises:
            NotAuthenticatedError: No refresh token presented.
            InvalidTokenError: Token bad or expired.
            SessionNotFoundError: No session holds this token (rotated away or
                logged out), or it belongs to another account.
        """
        if not refresh_token:
            raise NotAuthenticatedError("Unauthorized")

        account_id = self._tokens.verify(refresh_token, TokenKind.REFRESH)

        session = self._session_manager.find_by_refresh_token(refresh_token)
        if session is None or session.account_id != account_id:
            raise SessionNotFoundError("Session not found")
        if principal is not None and principal.account_id != account_id:
            raise SessionNotFoundError("Session not found")

        new_refresh = self._tokens.issue(account_id, TokenKind.REFRESH)
        session = self._session_manager.rotate(
            session.id,
            new_refresh_token=new_refresh,
            new_expires_at=self._tokens.expires_at(TokenKind.REFRESH),
            expected_refresh_token=refresh_token,
        )

        return IssuedTokens(
            access_token=self._tokens.issue(account_id, TokenKind.ACCESS),
            refresh_token=new_refresh,
            session=session,
        )

    def authenticate(self, access_token: str | None) -> AuthenticatedPrincipal:
        """Resolve an access token to the caller.

        Raises:
            NotAuthenticatedError: No token, bad token, or no session for the account.
        """
        if not access_token:
            raise NotAuthenticatedError("Unauthorized")

        try:
            account_id = self._tokens.verify(access_token, TokenKind.ACCESS)
        except InvalidTokenError:
            raise NotAuthenticatedError("Invalid or expired token")

        session = self._session_manager.find_by_account_id(account_id)
        if session is None:
            raise NotAuthenticatedError("Session not found")

        return AuthenticatedPrincipal(account_id=account_id, session_id=session.id)

    def is_authenticated(self, access_token: str | None, refresh_token: str | None) -> bool:
        """True if either cookie carries a token that still verifies."""
        for token, kind in ((access_token, TokenKind.ACCESS), (refresh_token, TokenKind.REFRESH)):
            if not token:
                continue
            try:
                self._tokens.verify(token, kind)
                return True
            except InvalidTokenError:
                continue
        return False

    def logout(self, principal: AuthenticatedPrincipal) -> None:
        """Delete the caller's session. Safe if it is already gone."""
        self._session_manager.destroy(principal.session_id)

    def me(self, principal: AuthenticatedPrincipal) -> AccountOverview:
        """
        Raises:
            NotAuthenticatedError: Account no longer exists.
        """
        account = self._store.get_account_by_id(principal.account_id)
        if account is None:
            raise NotAuthenticatedError("Account not found")

        return AccountOverview(
            account=account,
            sessions=self._session_manager.list_for_account(account.id),
            logs=self._security_logger.get_recent_events(account.id),
            providers=self._store.list_oauth_accounts(account.id),
        )

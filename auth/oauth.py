"""OAuth login and account linking.

A provider identity (provider, provider_id) maps to at most one account.
Resolution order on callback: existing link, then an account with the same
email (which gets linked), then a brand new password-less account.
"""

import logging
import secrets
from dataclasses import dataclass
from urllib.parse import urlparse

from auth.config import AuthConfig
from auth.exceptions import (
    EmailUnavailableError,
    MissingAuthorizationCodeError,
    StateMismatchError,
    UnknownProviderError,
    UpstreamAuthError,
    UpstreamProfileFetchError,
    UpstreamTokenExchangeError,
)
from auth.security_logger import SecurityLogger
from auth.session import SessionManager
from auth.store import AuthStore
from auth.types import (
    Account,
    AuthAction,
    AuthenticatedAccount,
    LogStatus,
    OAuthProfile,
    ProviderEmail,
)
from clients.oauth_client import (
    OAuthClientError,
    OAuthProvider,
    ProfileFetchError,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)


def normalize_avatar_url(url: str | None) -> str | None:
    """Keep the URL only if it is an absolute http(s) URL."""
    if not url or not isinstance(url, str):
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return url


def state_cookie_name(provider: str) -> str:
    return f"{provider}_oauth_state"


def _pick_email(emails: list[ProviderEmail]) -> str | None:
    """Primary and verified first, then any primary."""
    for entry in emails:
        if entry.primary and entry.verified:
            return entry.email
    for entry in emails:
        if entry.primary:
            return entry.email
    return None


@dataclass
class OAuthRedirect:
    """Where to send the browser, and the state to remember in a cookie."""

    url: str
    state: str
    cookie_name: str


class OAuthLoginResult(AuthenticatedAccount):
    """AuthenticatedAccount plus which provider vouched for it."""

    provider: str


class OAuthLinker:
    """Runs the authorization-code handshake and links identities to accounts."""

    def __init__(
        self,
        providers: dict[str, OAuthProvider],
        store: AuthStore,
        session_manager: SessionManager,
        security_logger: SecurityLogger,
        config: AuthConfig,
    ):
        self._providers = dict(providers)
        self._store = store
        self._session_manager = session_manager
        self._security_logger = security_logger
        self._config = config

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    def provider(self, name: str) -> OAuthProvider:
        """
        Raises:
            UnknownProviderError: Provider not configured.
        """
        provider = self._providers.get(name)
        if provider is None:
            raise UnknownProviderError(f"Unknown OAuth provider: {name}")
        return provider

    def begin(self, provider_name: str) -> OAuthRedirect:
        """Start the handshake with a fresh anti-forgery state."""
        provider = self.provider(provider_name)
        state = secrets.token_hex(32)
        return OAuthRedirect(
            url=provider.authorization_url(state),
            state=state,
            cookie_name=state_cookie_name(provider.name),
        )

    def complete(
        self,
        provider_name: str,
        code: str | None,
        state: str | None,
        stored_state: str | None,
        error: str | None = None,
        error_description: str | None = None,
        client_ip: str = "unknown",
        user_agent: str = "unknown",
    ) -> OAuthLoginResult:
        """Finish the handshake: exchange the code, resolve the account, open a session.

        Raises:
            UnknownProviderError: Provider not configured.
            UpstreamAuthError: Provider redirected back with an error.
            MissingAuthorizationCodeError: No code in the callback.
            StateMismatchError: State cookie missing or not matching.
            UpstreamTokenExchangeError: Code exchange failed.
            UpstreamProfileFetchError: Profile request failed.
            EmailUnavailableError: No usable email from the provider.
        """
        provider = self.provider(provider_name)

        if error:
            if error_description:
                message = f"{error}: {error_description}"
            else:
                message = f"{provider.display_name} OAuth error: {error}"
            logger.warning(f"{provider.display_name} callback returned error {error!r}")
            raise UpstreamAuthError(message)

        if not code:
            raise MissingAuthorizationCodeError("Authorization code not provided")

        if not state or not stored_state or not secrets.compare_digest(state, stored_state):
            logger.warning(f"{provider.display_name} callback state mismatch from {client_ip}")
            raise StateMismatchError("Invalid OAuth state")

        try:
            access_token = provider.exchange_code(code)
        except TokenExchangeError as e:
            raise UpstreamTokenExchangeError(f"Failed to obtain {provider.display_name} access token") from e

        try:
            profile = provider.fetch_profile(access_token)
        except ProfileFetchError as e:
            raise UpstreamProfileFetchError(f"Failed to fetch {provider.display_name} profile") from e

        email = profile.email
        if not email:
            try:
                email = _pick_email(provider.fetch_emails(access_token))
            except OAuthClientError as e:
                logger.warning(f"{provider.display_name} email list unavailable: {e}")
                email = None

        if not email:
            raise EmailUnavailableError(f"Could not obtain email from {provider.display_name}")

        profile = profile.model_copy(update={"email": email.strip().lower()})
        account, is_new = self.resolve_account(provider.name, profile)

        tokens = self._session_manager.issue_for_account(account.id, client_ip, user_agent)
        self._security_logger.log(
            AuthAction.REGISTER if is_new else AuthAction.LOGIN,
            account_id=account.id,
            client_ip=client_ip,
            user_agent=user_agent,
            status=LogStatus.SUCCESS,
            reason=f"{provider.display_name} OAuth",
        )

        return OAuthLoginResult(account=account, tokens=tokens, is_new=is_new, provider=provider.name)

    def resolve_account(self, provider_name: str, profile: OAuthProfile) -> tuple[Account, bool]:
        """Find or create the account for a provider identity and make sure it is linked.

        Returns:
            (account, is_new) where is_new means the account was created here.
        """
        link = self._store.get_oauth_account(provider_name, profile.provider_id)

        account = None
        if link is not None:
            account = self._store.get_account_by_id(link.account_id)
        if account is None:
            account = self._store.get_account_by_email(profile.email)

        is_new = False
        if account is None:
            is_new = True
            account = self._store.create_account(
                email=profile.email,
                name=profile.name or profile.email.split("@")[0],
                password_hash=None,
                avatar_url=normalize_avatar_url(profile.avatar_url),
            )
            logger.info(f"Account {account.id} created from {provider_name} identity")

        if link is None:
            self._store.create_oauth_account(account.id, provider_name, profile.provider_id)
            logger.info(f"Linked {provider_name} identity to account {account.id}")

        return account, is_new

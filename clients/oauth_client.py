"""
OAuth 2.0 provider clients (Google, GitHub).

Each provider exposes the same capability surface:
authorization_url / exchange_code / fetch_profile / fetch_emails.
Server-to-server calls use requests with a bounded timeout and are never
retried; a failure is reported to the caller.
"""

import logging
from typing import Protocol
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from auth.types import OAuthProfile, ProviderEmail

logger = logging.getLogger(__name__)


class OAuthClientError(Exception):
    """Provider call failed. ``status_code`` is None for transport errors."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TokenExchangeError(OAuthClientError):
    """Authorization code could not be exchanged for an access token."""


class ProfileFetchError(OAuthClientError):
    """Profile or email-list request failed."""


class OAuthProvider(Protocol):
    name: str
    display_name: str

    def authorization_url(self, state: str) -> str: ...

    def exchange_code(self, code: str) -> str: ...

    def fetch_profile(self, access_token: str) -> OAuthProfile: ...

    def fetch_emails(self, access_token: str) -> list[ProviderEmail]: ...


class _HTTPProvider:
    """Shared request plumbing for the concrete providers."""

    name = ""
    display_name = ""

    def __init__(self, client_id: str, client_secret: str, callback_url: str, timeout: float = 10.0):
        if not client_id:
            raise ValueError("client_id is required")
        if not client_secret:
            raise ValueError("client_secret is required")
        if not callback_url:
            raise ValueError("callback_url is required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self.timeout = timeout

    def _request(self, method: str, url: str, error_cls: type[OAuthClientError], **kwargs):
        """Send a request and return decoded JSON; raise error_cls on any failure."""
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"{self.display_name} request to {url} failed: {e}")
            raise error_cls(f"Connection failed: {e}") from e

        if not response.ok:
            logger.warning(f"{self.display_name} returned {response.status_code} for {url}")
            raise error_cls(
                f"{self.display_name} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise error_cls(f"{self.display_name} returned invalid JSON", status_code=response.status_code) from e

    @staticmethod
    def _require_id(data) -> None:
        if not isinstance(data, dict) or data.get("id") in (None, ""):
            raise ProfileFetchError("Profile response has no id")

    @staticmethod
    def _access_token_from(payload: dict, error_cls: type[OAuthClientError]) -> str:
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            # GitHub answers 200 with {"error": ...} for bad codes.
            reason = payload.get("error", "no access_token") if isinstance(payload, dict) else "no access_token"
            raise error_cls(f"Token exchange rejected: {reason}")
        return token


class GoogleProvider(_HTTPProvider):
    """Google OpenID Connect (authorization code flow)."""

    name = "google"
    display_name = "Google"

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "offline",
            "prompt": "select_account",
            "state": state,
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        payload = self._request(
            "POST",
            self.TOKEN_URL,
            TokenExchangeError,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.callback_url,
                "grant_type": "authorization_code",
            },
        )
        return self._access_token_from(payload, TokenExchangeError)

    def fetch_profile(self, access_token: str) -> OAuthProfile:
        data = self._request(
            "GET",
            self.USERINFO_URL,
            ProfileFetchError,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        self._require_id(data)
        return OAuthProfile(
            provider_id=str(data["id"]),
            email=data.get("email"),
            name=data.get("name"),
            avatar_url=data.get("picture"),
        )

    def fetch_emails(self, access_token: str) -> list[ProviderEmail]:
        """Google always includes the email in the profile; there is no list endpoint."""
        return []


class GitHubProvider(_HTTPProvider):
    """GitHub OAuth app."""

    name = "github"
    display_name = "GitHub"

    AUTH_URL = "https://github.com/login/oauth/authorize"
    TOKEN_URL = "https://github.com/login/oauth/access_token"
    USERINFO_URL = "https://api.github.com/user"
    EMAILS_URL = "https://api.github.com/user/emails"
    API_VERSION = "2022-11-28"

    def _api_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.API_VERSION,
        }

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "scope": "read:user user:email",
            "state": state,
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        payload = self._request(
            "POST",
            self.TOKEN_URL,
            TokenExchangeError,
            json={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "code": code,
                "redirect_uri": self.callback_url,
            },
            headers={"Accept": "application/json"},
        )
        return self._access_token_from(payload, TokenExchangeError)

    def fetch_profile(self, access_token: str) -> OAuthProfile:
        data = self._request("GET", self.USERINFO_URL, ProfileFetchError, headers=self._api_headers(access_token))
        self._require_id(data)
        return OAuthProfile(
            provider_id=str(data["id"]),
            email=data.get("email"),
            name=data.get("name") or data.get("login"),
            avatar_url=data.get("avatar_url"),
        )

    def fetch_emails(self, access_token: str) -> list[ProviderEmail]:
        data = self._request("GET", self.EMAILS_URL, ProfileFetchError, headers=self._api_headers(access_token))
        if not isinstance(data, list):
            raise ProfileFetchError("Email list response is not a list")
        emails = []
        for entry in data:
            try:
                emails.append(ProviderEmail.model_validate(entry))
            except ValidationError:
                logger.warning("GitHub email list entry skipped: malformed")
        return emails

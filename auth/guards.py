"""Request gates as FastAPI dependencies.

principal: caller must hold a valid access token backed by a session.
anonymous: caller must NOT hold a valid access or refresh token.
rate_limit: per-IP fixed-window throttle for the matched route.
"""

import ipaddress

from fastapi import Request

from auth.config import AuthConfig
from auth.exceptions import AlreadyAuthenticatedError
from auth.rate_limiter import RateLimiter
from auth.service import AuthService
from auth.types import AuthenticatedPrincipal


def _valid_ip(value: str | None) -> str | None:
    if not value:
        return None
    value = value.strip()
    try:
        ipaddress.ip_address(value)
        return value
    except ValueError:
        return None


def client_ip(request: Request, trust_proxy: bool = True) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the peer.

    Proxy headers are only read when trust_proxy is set. "unknown" when
    nothing usable is found.
    """
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = _valid_ip(forwarded.split(",")[0])
            if ip:
                return ip
        ip = _valid_ip(request.headers.get("x-real-ip"))
        if ip:
            return ip

    if request.client:
        ip = _valid_ip(request.client.host)
        if ip:
            return ip
    return "unknown"


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"


def route_key(request: Request) -> str:
    """Full request path ("/api/auth/login"), the key of the rate-limit rule table.

    Not the matched route template: inside an included router that is the
    router-local path ("/login"). Throttled routes take no path parameters.
    """
    return request.url.path


class AuthGuard:
    """Builds the dependencies routes declare with Depends()."""

    def __init__(self, auth_service: AuthService, rate_limiter: RateLimiter, config: AuthConfig):
        self._auth_service = auth_service
        self._rate_limiter = rate_limiter
        self._config = config

    def client_ip(self, request: Request) -> str:
        return client_ip(request, self._config.trust_proxy)

    def principal(self, request: Request) -> AuthenticatedPrincipal:
        """
        Raises:
            NotAuthenticatedError: Missing/invalid access token or no session.
        """
        token = request.cookies.get(self._config.access_cookie_name)
        return self._auth_service.authenticate(token)

    def anonymous(self, request: Request) -> None:
        """
        Raises:
            AlreadyAuthenticatedError: A token cookie still verifies.
        """
        if self._auth_service.is_authenticated(
            request.cookies.get(self._config.access_cookie_name),
            request.cookies.get(self._config.refresh_cookie_name),
        ):
            raise AlreadyAuthenticatedError("Already authenticated")

    def rate_limit(self, request: Request) -> None:
        """
        Raises:
            RateLimitedError: Window for this IP and route is full.
        """
        self._rate_limiter.check(self.client_ip(request), route_key(request))

"""HTTP routes for authentication.

Handlers are plain ``def``: hashing, Postgres, Valkey and provider calls all
block, so FastAPI runs them in its threadpool.
"""

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from api.base import success_response, error_response
from api.errors import status_for
from api.middleware import get_request_id
from auth.config import AuthConfig
from auth.exceptions import (
    InvalidTokenError,
    NotAuthenticatedError,
    SessionNotFoundError,
)
from auth.guards import AuthGuard, user_agent
from auth.oauth import OAuthLinker, state_cookie_name
from auth.service import AuthService
from auth.tokens import parse_duration
from auth.types import (
    AuthenticatedPrincipal,
    IssuedTokens,
    LoginRequest,
    RegisterRequest,
    VerifyRequest,
)


class CookieWriter:
    """Sets and clears the token cookies with consistent attributes."""

    def __init__(self, config: AuthConfig):
        self._config = config
        self._access_max_age = parse_duration(config.access_token_expires_in) // 1000
        self._refresh_max_age = parse_duration(config.refresh_token_expires_in) // 1000

    def set_tokens(self, response: Response, tokens: IssuedTokens, samesite: str = "strict") -> None:
        response.set_cookie(
            key=self._config.refresh_cookie_name,
            value=tokens.refresh_token,
            httponly=True,
            secure=self._config.secure_cookies,
            samesite=samesite,
            path="/",
            max_age=self._refresh_max_age,
        )
        response.set_cookie(
            key=self._config.access_cookie_name,
            value=tokens.access_token,
            httponly=True,
            secure=self._config.secure_cookies,
            samesite=samesite,
            path="/",
            max_age=self._access_max_age,
        )

    def clear_tokens(self, response: Response) -> None:
        response.delete_cookie(key=self._config.access_cookie_name, path="/")
        response.delete_cookie(key=self._config.refresh_cookie_name, path="/")

    def set_state(self, response: Response, name: str, state: str) -> None:
        response.set_cookie(
            key=name,
            value=state,
            httponly=True,
            secure=self._config.secure_cookies,
            samesite="lax",
            path="/",
            max_age=self._config.oauth_state_max_age_seconds,
        )

    def clear_state(self, response: Response, name: str) -> None:
        response.delete_cookie(key=name, path="/")


def _account_summary(account, is_new: bool) -> dict:
    return {
        "id": str(account.id),
        "email": account.email,
        "name": account.name,
        "is_new": is_new,
    }


def create_auth_router(auth_service: AuthService, guard: AuthGuard, config: AuthConfig) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])
    cookies = CookieWriter(config)
    gated = [Depends(guard.rate_limit), Depends(guard.anonymous)]

    @router.post("/register", status_code=201, dependencies=gated)
    def register(request: Request, body: RegisterRequest):
        """Send a verification code for a new account."""
        result = auth_service.register(
            email=body.email,
            password=body.password,
            name=body.name,
            client_ip=guard.client_ip(request),
            user_agent=user_agent(request),
        )
        return success_response(
            {"message": "Verification code sent to email", "expires_in_minutes": result.expires_in_minutes},
            request_id=get_request_id(request),
        )

    @router.post("/login", dependencies=gated)
    def login(request: Request, body: LoginRequest):
        """Check credentials and send a verification code."""
        result = auth_service.login(
            email=body.email,
            password=body.password,
            client_ip=guard.client_ip(request),
            user_agent=user_agent(request),
        )
        return success_response(
            {"message": "Verification code sent to email", "expires_in_minutes": result.expires_in_minutes},
            request_id=get_request_id(request),
        )

    @router.post("/verify", dependencies=gated)
    def verify(request: Request, response: Response, body: VerifyRequest):
        """Verify code and open a session.

        Sets accessToken and refreshToken cookies on success.
        """
        result = auth_service.verify(
            email=body.email,
            code=body.code,
            client_ip=guard.client_ip(request),
            user_agent=user_agent(request),
        )
        cookies.set_tokens(response, result.tokens)
        return success_response(
            {
                "message": "Authenticated successfully",
                "account": _account_summary(result.account, result.is_new),
            },
            request_id=get_request_id(request),
        )

    @router.post("/refresh", dependencies=[Depends(guard.rate_limit)])
    def refresh(request: Request, response: Response):
        """Rotate the refresh token for an authenticated caller.

        The access token is checked here rather than as a dependency so that
        any failure, including a missing access token, clears both cookies.
        """
        try:
            principal = guard.principal(request)
            tokens = auth_service.refresh(request.cookies.get(config.refresh_cookie_name), principal)
        except (NotAuthenticatedError, InvalidTokenError, SessionNotFoundError) as e:
            status_code, code = status_for(e)
            if isinstance(e, InvalidTokenError):
                message = "Invalid or expired refresh token"
            else:
                message = str(e)
            failure = JSONResponse(
                status_code=status_code,
                content=error_response(code, message, request_id=get_request_id(request)).model_dump(mode="json"),
            )
            cookies.clear_tokens(failure)
            return failure

        cookies.set_tokens(response, tokens)
        return success_response({"message": "Token refreshed"}, request_id=get_request_id(request))

    @router.post("/logout")
    def logout(
        request: Request,
        response: Response,
        principal: AuthenticatedPrincipal = Depends(guard.principal),
    ):
        """Logout - delete session and clear cookies."""
        auth_service.logout(principal)
        cookies.clear_tokens(response)
        return success_response({"message": "Logged out successfully"}, request_id=get_request_id(request))

    @router.get("/me")
    def me(request: Request, principal: AuthenticatedPrincipal = Depends(guard.principal)):
        """Account, sessions, activity and linked providers for the caller."""
        overview = auth_service.me(principal)
        return success_response(overview.to_public(), request_id=get_request_id(request))

    return router


def create_oauth_router(linker: OAuthLinker, guard: AuthGuard, config: AuthConfig) -> APIRouter:
    """Create OAuth router (mounted under /api/auth/oauth)."""
    router = APIRouter(tags=["oauth"])
    cookies = CookieWriter(config)

    @router.get("/{provider}", dependencies=[Depends(guard.anonymous)])
    def begin(provider: str):
        """Redirect to the provider's consent page with a fresh state cookie."""
        redirect = linker.begin(provider)
        response = RedirectResponse(url=redirect.url, status_code=302)
        cookies.set_state(response, redirect.cookie_name, redirect.state)
        return response

    @router.get("/{provider}/callback")
    def callback(
        provider: str,
        request: Request,
        response: Response,
        code: str | None = Query(None),
        state: str | None = Query(None),
        error: str | None = Query(None),
        error_description: str | None = Query(None),
    ):
        """Finish the handshake and open a session.

        Token cookies are SameSite=lax: the callback is a cross-site navigation.
        """
        result = linker.complete(
            provider,
            code=code,
            state=state,
            stored_state=request.cookies.get(state_cookie_name(provider)),
            error=error,
            error_description=error_description,
            client_ip=guard.client_ip(request),
            user_agent=user_agent(request),
        )

        cookies.clear_state(response, state_cookie_name(result.provider))
        cookies.set_tokens(response, result.tokens, samesite="lax")
        return success_response(
            {
                "message": "Authenticated successfully",
                "account": _account_summary(result.account, result.is_new),
            },
            request_id=get_request_id(request),
        )

    return router

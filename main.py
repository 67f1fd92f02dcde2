"""Application entry point.

    uvicorn main:create_production_app --factory

create_app() takes already-built collaborators so tests can run the full HTTP
stack against in-memory fakes; create_production_app() builds them from Vault.
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

from dotenv import load_dotenv
from fastapi import FastAPI, Request

from api.base import success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware, get_request_id
from auth.api import create_auth_router, create_oauth_router
from auth.config import AuthConfig
from auth.guards import AuthGuard
from auth.hashing import CredentialHasher
from auth.oauth import OAuthLinker
from auth.pending import PendingAuthWorkflow
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.service import AuthService
from auth.session import SessionManager
from auth.store import AuthStore
from auth.tokens import TokenService
from clients.email_client import EmailGatewayClient
from clients.oauth_client import GitHubProvider, GoogleProvider, OAuthProvider
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)

OAUTH_PROVIDERS = {
    "google": GoogleProvider,
    "github": GitHubProvider,
}


@dataclass
class AuthComponents:
    """Everything the routers need, wired together."""

    config: AuthConfig
    store: AuthStore
    auth_service: AuthService
    oauth_linker: OAuthLinker
    rate_limiter: RateLimiter
    guard: AuthGuard


def build_components(
    config: AuthConfig,
    store: AuthStore,
    valkey: ValkeyClient,
    email_client: EmailGatewayClient,
    access_secret: str,
    refresh_secret: str,
    providers: dict[str, OAuthProvider],
) -> AuthComponents:
    """Wire the auth services around the given infrastructure clients."""
    hasher = CredentialHasher(rounds=config.bcrypt_rounds)
    token_service = TokenService(config, access_secret, refresh_secret)
    session_manager = SessionManager(store, token_service)
    security_logger = SecurityLogger(store)
    rate_limiter = RateLimiter(valkey, config.rate_limits)

    auth_service = AuthService(
        config=config,
        store=store,
        hasher=hasher,
        token_service=token_service,
        pending=PendingAuthWorkflow(store, hasher, config),
        session_manager=session_manager,
        email_client=email_client,
        security_logger=security_logger,
    )
    oauth_linker = OAuthLinker(providers, store, session_manager, security_logger, config)

    return AuthComponents(
        config=config,
        store=store,
        auth_service=auth_service,
        oauth_linker=oauth_linker,
        rate_limiter=rate_limiter,
        guard=AuthGuard(auth_service, rate_limiter, config),
    )


def create_app(components: AuthComponents, lifespan=None) -> FastAPI:
    """Build the FastAPI app: middleware, error handlers, routers."""
    app = FastAPI(
        title=components.config.app_name,
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(
        create_auth_router(components.auth_service, components.guard, components.config),
        prefix="/api/auth",
    )
    app.include_router(
        create_oauth_router(components.oauth_linker, components.guard, components.config),
        prefix="/api/auth/oauth",
    )

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint"""
        return success_response({"status": "healthy"}, request_id=get_request_id(request))

    return app


def create_production_app() -> FastAPI:
    """App backed by PostgreSQL, Valkey, the email gateway and real providers.

    All secrets come from Vault; any missing one fails startup.
    """
    from auth.database import AuthDatabase
    from clients.postgres_client import PostgresClient
    from clients.vault_client import (
        get_database_url,
        get_email_config,
        get_jwt_secrets,
        get_oauth_config,
        get_valkey_url,
    )

    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = AuthConfig(
        environment=os.getenv("ENVIRONMENT", "development"),
        trust_proxy=os.getenv("TRUST_PROXY", "true").lower() == "true",
    )

    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())
    email_config = get_email_config()
    jwt_secrets = get_jwt_secrets()

    providers = {}
    for name, provider_cls in OAUTH_PROVIDERS.items():
        oauth_config = get_oauth_config(name)
        providers[name] = provider_cls(
            client_id=oauth_config["client_id"],
            client_secret=oauth_config["client_secret"],
            callback_url=oauth_config["callback_url"],
            timeout=config.oauth_http_timeout_seconds,
        )

    components = build_components(
        config=config,
        store=AuthDatabase(postgres),
        valkey=valkey,
        email_client=EmailGatewayClient(
            gateway_url=email_config["gateway_url"],
            api_key=email_config["api_key"],
            hmac_secret=email_config["hmac_secret"],
        ),
        access_secret=jwt_secrets["access_secret"],
        refresh_secret=jwt_secrets["refresh_secret"],
        providers=providers,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {config.app_name} ({config.environment})")
        yield
        logger.info(f"Shutting down {config.app_name}...")
        valkey.close()
        postgres.close()

    return create_app(components, lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:create_production_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level="info",
    )

"""Authentication configuration."""

from pydantic import BaseModel, Field, field_validator


class RateLimitRule(BaseModel):
    """Fixed-window limit for one route."""

    max_hits: int = Field(..., ge=1)
    window_ms: int = Field(..., ge=1000)


_HOUR_MS = 60 * 60 * 1000


def _default_rate_limits() -> dict[str, RateLimitRule]:
    return {
        "/api/auth/register": RateLimitRule(max_hits=5, window_ms=_HOUR_MS),
        "/api/auth/login": RateLimitRule(max_hits=10, window_ms=_HOUR_MS),
        "/api/auth/verify": RateLimitRule(max_hits=5, window_ms=_HOUR_MS),
        "/api/auth/refresh": RateLimitRule(max_hits=30, window_ms=_HOUR_MS),
    }


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Token lifetimes use the compact duration format understood by
    auth.tokens.parse_duration ("15m", "7d"). Everything else is in the
    unit named by the field.
    """

    # Tokens
    access_token_expires_in: str = Field(
        default="15m",
        description="Access token lifetime (also the accessToken cookie max-age)",
    )
    refresh_token_expires_in: str = Field(
        default="7d",
        description="Refresh token lifetime (also the refreshToken cookie max-age)",
    )

    # Verification codes
    verification_code_expiry_minutes: int = Field(
        default=15,
        description="How long an emailed verification code remains valid",
        ge=1,
        le=60,
    )
    bcrypt_rounds: int = Field(
        default=10,
        description="bcrypt cost factor for passwords and verification codes",
        ge=4,
        le=16,
    )

    # OAuth
    oauth_state_max_age_seconds: int = Field(
        default=600,
        description="Lifetime of the {provider}_oauth_state cookie",
        ge=60,
        le=3600,
    )
    oauth_http_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for server-to-server provider calls",
        gt=0,
        le=60,
    )

    # Rate limiting
    rate_limits: dict[str, RateLimitRule] = Field(
        default_factory=_default_rate_limits,
        description="Per-route fixed-window limits keyed by route path; unlisted routes are unthrottled",
    )

    # HTTP boundary
    environment: str = Field(
        default="development",
        description="development | production | test; production turns on secure cookies",
    )
    trust_proxy: bool = Field(
        default=True,
        description="Take the client IP from X-Forwarded-For / X-Real-IP",
    )
    access_cookie_name: str = "accessToken"
    refresh_cookie_name: str = "refreshToken"

    # Application
    app_name: str = Field(
        default="Auth Service",
        description="Application name for emails",
    )

    @field_validator("environment")
    @classmethod
    def _known_environment(cls, value: str) -> str:
        if value not in ("development", "production", "test"):
            raise ValueError(f"Unknown environment: {value}")
        return value

    @field_validator("access_token_expires_in", "refresh_token_expires_in")
    @classmethod
    def _parseable_duration(cls, value: str) -> str:
        # Imported here: auth.tokens depends on this module.
        from auth.tokens import parse_duration

        parse_duration(value)
        return value

    @property
    def secure_cookies(self) -> bool:
        return self.environment == "production"

"""
Application configuration.

All settings come from environment variables (secrets through
``get_secret``) and are frozen into an ``AppConfig`` at startup, then
handed to ``create_app``.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from .secrets import get_secret, get_required_secret


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _default_database_url() -> str:
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "keyward")
    user = os.getenv("POSTGRES_USER", "keyward_user")
    password = get_secret("POSTGRES_PASSWORD", "")
    return f"postgresql://{user}:{password}@{host}:{port}/{db}"


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the API process."""
    database_url: str
    jwt_secret: str = field(repr=False)
    jwt_algorithm: str = "HS256"
    session_ttl_hours: int = 24
    totp_issuer: str = "Keyward"
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    request_timeout_seconds: float = 15.0
    rate_limit_enabled: bool = True
    redis_host: Optional[str] = None
    redis_port: int = 6379
    redis_password: Optional[str] = field(default=None, repr=False)
    redis_db: int = 0
    app_env: str = "production"
    version: str = "0.1.0"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Build the configuration from the process environment.

        Raises:
            ValueError: If JWT_SECRET is not configured.
        """
        origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")
        return cls(
            database_url=os.getenv("DATABASE_URL") or _default_database_url(),
            jwt_secret=get_required_secret("JWT_SECRET"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            session_ttl_hours=int(os.getenv("SESSION_TOKEN_TTL_HOURS", "24")),
            totp_issuer=os.getenv("TOTP_ISSUER", "Keyward"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "15")),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", "true"),
            redis_host=os.getenv("REDIS_HOST") or None,
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_password=get_secret("REDIS_PASSWORD") or None,
            redis_db=int(os.getenv("REDIS_DB", "0")),
            app_env=os.getenv("APP_ENV", "production"),
            version=os.getenv("APP_VERSION", "0.1.0"),
        )

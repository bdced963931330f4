import os
import secrets
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str | None:
    # An unset URL is not fatal: the API starts in degraded (admin-only) mode.
    url = os.getenv("DATABASE_URL") or os.getenv("NEON_DATABASE_URL")
    if not url:
        return None
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def _resolve_environment() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("NODE_ENV") or "development").strip().lower()


def _default_reset_ttl_minutes() -> int:
    fallback = "15" if _resolve_environment() == "production" else "60"
    return int(os.getenv("RESET_TOKEN_TTL_MINUTES", fallback))


def _to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    environment: str = _resolve_environment()

    database_url: str | None = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "10"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))
    db_connect_timeout: int = int(os.getenv("DB_CONNECT_TIMEOUT", "5"))
    db_statement_timeout_ms: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "10000"))
    db_auto_create: bool = _to_bool(os.getenv("DB_AUTO_CREATE"))

    # Password hashing
    bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "10"))

    # Fixed operator account, never stored in the database
    admin_email: str = os.getenv("ADMIN_EMAIL", "adm@email.com")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "123456")
    admin_name: str = os.getenv("ADMIN_NAME", "Administrador")

    # Tokens
    remember_me_ttl_days: int = int(os.getenv("REMEMBER_ME_TTL_DAYS", "30"))
    reset_token_ttl_minutes: int = _default_reset_ttl_minutes()
    auth_cookie_name: str = os.getenv("AUTH_COOKIE_NAME", "mathkids_auth_token")
    admin_cookie_name: str = os.getenv("ADMIN_COOKIE_NAME", "mathkids_admin_remember")
    # Signs the admin remember-me cookie. Unset means a per-process key, so
    # admin cookies do not survive a restart.
    secret_key: str = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    token_sweep_interval_seconds: int = int(
        os.getenv("TOKEN_SWEEP_INTERVAL_SECONDS", "3600")
    )

    # Links in reset emails
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # SMTP
    smtp_host: str = os.getenv("SMTP_HOST", "")
    smtp_port: int = int(os.getenv("SMTP_PORT", "587"))
    smtp_username: str = os.getenv("SMTP_USERNAME", "")
    smtp_password: str = os.getenv("SMTP_PASSWORD", "")
    smtp_use_tls: bool = _to_bool(os.getenv("SMTP_USE_TLS"), default=True)
    smtp_timeout: float = float(os.getenv("SMTP_TIMEOUT", "10"))
    email_from: str = os.getenv("EMAIL_FROM", "mathkids@exemplo.com")
    email_from_name: str = os.getenv("EMAIL_FROM_NAME", "MathKids - Educação Infantil")

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )

    # HTTP surface
    cors_origins: list[str] = field(
        default_factory=lambda: _to_list(
            os.getenv(
                "CORS_ORIGINS",
                "http://localhost:5000,http://127.0.0.1:5000,"
                "http://localhost:8080,http://localhost:3000",
            )
        )
    )
    static_dir: str | None = os.getenv("STATIC_DIR") or None

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "text")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def database_configured(self) -> bool:
        return bool(self.database_url)


settings = Settings()

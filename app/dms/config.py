import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    auto_create_schema: bool
    bootstrap_defaults: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getflag(name: str) -> bool:
    return _getenv(name, "0").lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///dms.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        auto_create_schema=_getflag("AUTO_CREATE_SCHEMA"),
        bootstrap_defaults=_getflag("BOOTSTRAP_DEFAULTS"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "AUTO_CREATE_SCHEMA": s.auto_create_schema,
        "BOOTSTRAP_DEFAULTS": s.bootstrap_defaults,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # JSON API only; attachments are referenced by key, never uploaded here
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }

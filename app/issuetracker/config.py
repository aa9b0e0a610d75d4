import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    google_client_id: str
    google_client_secret: str
    cron_secret: str

    due_soon_days: int
    domain_expiry_days: int
    login_rate_limit: int
    issue_rate_limit: int
    api_rate_limit: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///issuetracker.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "us-east-1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        google_client_id=_getenv("GOOGLE_CLIENT_ID", ""),
        google_client_secret=_getenv("GOOGLE_CLIENT_SECRET", ""),
        cron_secret=_getenv("CRON_SECRET", ""),
        due_soon_days=_getenv_int("DUE_SOON_DAYS", 10),
        domain_expiry_days=_getenv_int("DOMAIN_EXPIRY_DAYS", 30),
        login_rate_limit=_getenv_int("LOGIN_RATE_LIMIT", 5),
        issue_rate_limit=_getenv_int("ISSUE_RATE_LIMIT", 3),
        api_rate_limit=_getenv_int("API_RATE_LIMIT", 100),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "GOOGLE_CLIENT_ID": s.google_client_id,
        "GOOGLE_CLIENT_SECRET": s.google_client_secret,
        "CRON_SECRET": s.cron_secret,
        "DUE_SOON_DAYS": s.due_soon_days,
        "DOMAIN_EXPIRY_DAYS": s.domain_expiry_days,
        # requests allowed per 60s window
        "LOGIN_RATE_LIMIT": s.login_rate_limit,
        "ISSUE_RATE_LIMIT": s.issue_rate_limit,
        "API_RATE_LIMIT": s.api_rate_limit,
        "RATE_LIMIT_WINDOW_SECONDS": 60,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request body limit (25MB); attachments are capped at 10MB in the files module
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
        "MAX_ATTACHMENT_BYTES": 10 * 1024 * 1024,
    }

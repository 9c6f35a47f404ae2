import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    storage_backend: str
    storage_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    s3_prefix: str

    esign_provider: str
    esign_provider_url: str
    esign_api_key: str
    esign_webhook_secret: str
    esign_max_retries: int

    notifier_backend: str
    notifier_webhook_url: str

    workflow_decision_retries: int
    workflow_retry_backoff_seconds: float


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _getenv_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number (got {raw!r}).")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///hse_docs.db"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_dir=_getenv("STORAGE_DIR", "storage"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        s3_prefix=_getenv("S3_PREFIX", "hse-documents"),
        esign_provider=_getenv("ESIGN_PROVIDER", "local"),
        esign_provider_url=_getenv("ESIGN_PROVIDER_URL", ""),
        esign_api_key=_getenv("ESIGN_API_KEY", ""),
        esign_webhook_secret=_getenv("ESIGN_WEBHOOK_SECRET", ""),
        esign_max_retries=_getenv_int("ESIGN_MAX_RETRIES", 3),
        notifier_backend=_getenv("NOTIFIER_BACKEND", "log"),
        notifier_webhook_url=_getenv("NOTIFIER_WEBHOOK_URL", ""),
        workflow_decision_retries=_getenv_int("WORKFLOW_DECISION_RETRIES", 3),
        workflow_retry_backoff_seconds=_getenv_float("WORKFLOW_RETRY_BACKOFF_SECONDS", 0.05),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_DIR": s.storage_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "S3_PREFIX": s.s3_prefix,
        "ESIGN_PROVIDER": s.esign_provider,
        "ESIGN_PROVIDER_URL": s.esign_provider_url,
        "ESIGN_API_KEY": s.esign_api_key,
        "ESIGN_WEBHOOK_SECRET": s.esign_webhook_secret,
        "ESIGN_MAX_RETRIES": s.esign_max_retries,
        "NOTIFIER_BACKEND": s.notifier_backend,
        "NOTIFIER_WEBHOOK_URL": s.notifier_webhook_url,
        "WORKFLOW_DECISION_RETRIES": s.workflow_decision_retries,
        "WORKFLOW_RETRY_BACKOFF_SECONDS": s.workflow_retry_backoff_seconds,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # file upload limits (25MB)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }


def production_problems(config: dict) -> list[str]:
    """Settings that must not reach a production deployment; empty outside prod."""
    if (config.get("ENV") or "").strip().lower() not in ("prod", "production"):
        return []
    problems = []
    db_url = str(config.get("DATABASE_URL") or "").strip()
    if not db_url:
        problems.append("DATABASE_URL is required in production.")
    elif db_url.startswith("sqlite"):
        problems.append("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(config.get("SECRET_KEY") or "") in ("", "change-me"):
        problems.append("SECRET_KEY must be set to a strong value in production (not default).")
    return problems

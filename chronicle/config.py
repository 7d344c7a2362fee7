"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from chronicle.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Chronicle service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  gemini_api_key: str | None
  text_model: str
  image_model: str
  max_retries: int
  lock_timeout_seconds: int
  worker_id: str | None
  email_notifications_enabled: bool
  email_from_address: str | None
  email_from_name: str | None
  mailersend_api_key: str | None
  mailersend_timeout_seconds: int
  mailersend_base_url: str
  app_base_url: str
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("CHRONICLE_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("CHRONICLE_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("CHRONICLE_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("CHRONICLE_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("CHRONICLE_DEBUG"))

  log_max_bytes = _parse_positive_int("CHRONICLE_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("CHRONICLE_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("CHRONICLE_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("CHRONICLE_LOG_HTTP_4XX"))

  # Generation job tuning. Defaults match the documented retry budget and lease window.
  max_retries = _parse_positive_int("CHRONICLE_MAX_RETRIES", "3")
  lock_timeout_seconds = _parse_positive_int("CHRONICLE_LOCK_TIMEOUT_SECONDS", "300")

  email_notifications_enabled = _parse_bool(os.getenv("CHRONICLE_EMAIL_NOTIFICATIONS_ENABLED"))
  email_from_address = _optional_str(os.getenv("CHRONICLE_EMAIL_FROM_ADDRESS"))
  mailersend_api_key = _optional_str(os.getenv("CHRONICLE_MAILERSEND_API_KEY"))
  mailersend_timeout_seconds = int(os.getenv("CHRONICLE_MAILERSEND_TIMEOUT_SECONDS", "10"))

  # Validate notification settings only when notifications are enabled.
  if email_notifications_enabled:
    if not email_from_address:
      raise ValueError("CHRONICLE_EMAIL_FROM_ADDRESS must be set when email notifications are enabled.")

    if not mailersend_api_key:
      raise ValueError("CHRONICLE_MAILERSEND_API_KEY must be set when email notifications are enabled.")

    if mailersend_timeout_seconds <= 0:
      raise ValueError("CHRONICLE_MAILERSEND_TIMEOUT_SECONDS must be a positive integer.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("CHRONICLE_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("CHRONICLE_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_parse_positive_int("CHRONICLE_PG_CONNECT_TIMEOUT", "5"),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    text_model=(os.getenv("CHRONICLE_TEXT_MODEL") or "gemini-2.5-flash").strip(),
    image_model=(os.getenv("CHRONICLE_IMAGE_MODEL") or "gemini-2.5-flash-image").strip(),
    max_retries=max_retries,
    lock_timeout_seconds=lock_timeout_seconds,
    worker_id=_optional_str(os.getenv("CHRONICLE_WORKER_ID")),
    email_notifications_enabled=email_notifications_enabled,
    email_from_address=email_from_address,
    email_from_name=_optional_str(os.getenv("CHRONICLE_EMAIL_FROM_NAME")),
    mailersend_api_key=mailersend_api_key,
    mailersend_timeout_seconds=mailersend_timeout_seconds,
    mailersend_base_url=(os.getenv("CHRONICLE_MAILERSEND_BASE_URL") or "https://api.mailersend.com/v1").strip(),
    app_base_url=(os.getenv("CHRONICLE_APP_BASE_URL") or "http://localhost:3000").strip().rstrip("/"),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("CHRONICLE_DEBUG"))
  pg_connect_timeout = _parse_positive_int("CHRONICLE_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("CHRONICLE_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value

"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from app.jobs.models import JOB_TYPES
from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


DEFAULT_CREDIT_COSTS: dict[str, int] = {"report": 10, "correction": 5, "concept_scores": 3, "executive_summary": 3, "parent_report": 5, "focus_concepts": 3, "notes_summary": 2}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the insights service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  webhook_urls: dict[str, str] = field(hash=False)
  dispatch_timeout_seconds: float
  credit_costs: dict[str, int] = field(hash=False)
  notification_queue_size: int

  def credit_cost(self, job_type: str) -> int:
    """Return the credit cost for a job type."""
    try:
      return self.credit_costs[job_type]
    except KeyError as exc:
      raise ValueError(f"Unsupported job type: {job_type}") from exc

  def webhook_url(self, job_type: str) -> str | None:
    """Return the webhook endpoint for a job type, falling back to the default endpoint."""
    return self.webhook_urls.get(job_type) or self.webhook_urls.get("default")


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("INSIGHTS_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("INSIGHTS_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("INSIGHTS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_json_dict(raw: str | None, default: dict[str, Any]) -> dict[str, Any]:
  if not raw:
    return default
  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError:
    return default
  if not isinstance(parsed, dict):
    return default
  return parsed


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_credit_costs(raw: str | None) -> dict[str, int]:
  """Merge credit cost overrides onto the default table."""
  overrides = _parse_json_dict(raw, {})
  costs = dict(DEFAULT_CREDIT_COSTS)
  for job_type, value in overrides.items():
    if job_type not in costs:
      raise ValueError(f"INSIGHTS_CREDIT_COSTS contains unknown job type: {job_type}")
    cost = int(value)
    if cost <= 0:
      raise ValueError(f"INSIGHTS_CREDIT_COSTS[{job_type}] must be a positive integer.")
    costs[job_type] = cost
  return costs


def _parse_webhook_urls() -> dict[str, str]:
  """Collect per-job-type webhook endpoints plus the shared default."""
  urls: dict[str, str] = {}
  default_url = _optional_str(os.getenv("INSIGHTS_WEBHOOK_DEFAULT_URL"))
  if default_url:
    urls["default"] = default_url
  for job_type in JOB_TYPES:
    value = _optional_str(os.getenv(f"INSIGHTS_WEBHOOK_{job_type.upper()}_URL"))
    if value:
      urls[job_type] = value
  return urls


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("INSIGHTS_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("INSIGHTS_DEBUG"))

  log_max_bytes = int(os.getenv("INSIGHTS_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("INSIGHTS_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("INSIGHTS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("INSIGHTS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("INSIGHTS_LOG_HTTP_4XX"))

  dispatch_timeout_seconds = float(os.getenv("INSIGHTS_DISPATCH_TIMEOUT_SECONDS", "120"))
  if dispatch_timeout_seconds <= 0:
    raise ValueError("INSIGHTS_DISPATCH_TIMEOUT_SECONDS must be positive.")

  notification_queue_size = int(os.getenv("INSIGHTS_NOTIFICATION_QUEUE_SIZE", "100"))
  if notification_queue_size <= 0:
    raise ValueError("INSIGHTS_NOTIFICATION_QUEUE_SIZE must be a positive integer.")

  pg_connect_timeout = int(os.getenv("INSIGHTS_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("INSIGHTS_PG_CONNECT_TIMEOUT must be a positive integer.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("INSIGHTS_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("INSIGHTS_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=pg_connect_timeout,
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    webhook_urls=_parse_webhook_urls(),
    dispatch_timeout_seconds=dispatch_timeout_seconds,
    credit_costs=_parse_credit_costs(os.getenv("INSIGHTS_CREDIT_COSTS")),
    notification_queue_size=notification_queue_size,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("INSIGHTS_DEBUG"))
  pg_connect_timeout = int(os.getenv("INSIGHTS_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("INSIGHTS_PG_CONNECT_TIMEOUT must be a positive integer.")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("INSIGHTS_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value

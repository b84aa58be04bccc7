import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from app.core.database import get_db_engine
from app.core.firebase import initialize_firebase
from app.core.logging import _initialize_logging
from fastapi import FastAPI


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and Firebase on startup and release the database pool on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # Keep serving with uvicorn's default handlers when the log directory is unusable.
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  initialize_firebase()

  if settings.pg_dsn:
    logger.info("Using Postgres storage INSIGHTS_PG_DSN=%s", _redact_dsn(settings.pg_dsn))
  else:
    logger.warning("INSIGHTS_PG_DSN not set; credits and artifacts are kept in process memory.")

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  # Provide a stable placeholder when the DSN is missing.
  if not raw:
    return "<unset>"

  # Parse the DSN so we can safely strip credentials.
  parsed = urlparse(raw)
  # Guard against malformed DSNs without a scheme.
  if not parsed.scheme:
    return "<invalid>"

  # Build a sanitized netloc with username and host metadata only.
  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  # Preserve the database name when available.
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"

from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import artifacts, notifications, subscription
from app.config import get_settings
from app.core.exceptions import authorization_mismatch_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from app.core.json import InsightsJSONResponse
from app.core.lifespan import lifespan
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.jobs.orchestrator import AuthorizationMismatch

settings = get_settings()

app = FastAPI(default_response_class=InsightsJSONResponse, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

app.add_middleware(CORSMiddleware, allow_origins=settings.allowed_origins, allow_credentials=True, allow_methods=["GET", "POST", "DELETE", "OPTIONS"], allow_headers=["content-type", "authorization"], expose_headers=["content-length", "x-request-id"])


# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(AuthorizationMismatch, authorization_mismatch_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(SecurityHeadersMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(artifacts.router, prefix="/v1", tags=["artifacts"])
app.include_router(subscription.router, prefix="/v1/subscription", tags=["subscription"])
app.include_router(notifications.router, prefix="/v1/notifications", tags=["notifications"])

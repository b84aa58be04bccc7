"""Webhook dispatch to the external AI service."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import httpx
from app.config import Settings
from app.jobs.models import Job
from app.jobs.request_bodies import build_request_body

logger = logging.getLogger(__name__)


class DispatchError(RuntimeError):
  """Raised when the AI service cannot be reached or answers with an unusable envelope."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class WebhookDispatcher:
  """Send one job to its webhook and return the decoded response body.

  Only the transport envelope is checked here; whatever JSON comes back is
  handed to the result normalizer untouched.
  """

  def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.settings = settings
    self._transport = transport

  def _build_client(self) -> httpx.AsyncClient:
    # Never trust environment proxy variables for webhook dispatch.
    return httpx.AsyncClient(transport=self._transport, timeout=httpx.Timeout(self.settings.dispatch_timeout_seconds), trust_env=False)

  async def dispatch(self, job: Job, context: Mapping[str, Any] | None = None) -> Any:
    """POST the job body to the configured webhook."""
    url = self.settings.webhook_url(job.job_type)
    if not url:
      raise DispatchError(f"No webhook configured for job type {job.job_type}")

    body = build_request_body(job, context)
    try:
      async with self._build_client() as client:
        logger.info("Dispatching job_id=%s job_type=%s", job.job_id, job.job_type)
        response = await client.post(url, json=body)
        response.raise_for_status()

    except httpx.HTTPStatusError as e:
      logger.error("Webhook returned %s for job_id=%s job_type=%s", e.response.status_code, job.job_id, job.job_type)
      raise DispatchError(f"AI service returned status {e.response.status_code}", status_code=e.response.status_code) from e
    except httpx.TimeoutException as e:
      logger.error("Webhook timed out after %ss for job_id=%s", self.settings.dispatch_timeout_seconds, job.job_id)
      raise DispatchError("AI service timed out") from e
    except httpx.RequestError as e:
      logger.error("Failed to reach webhook for job_id=%s: %s", job.job_id, e)
      raise DispatchError("AI service unreachable") from e

    try:
      return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
      logger.error("Webhook answered with a non-JSON body for job_id=%s", job.job_id)
      raise DispatchError("AI service returned a non-JSON response") from e

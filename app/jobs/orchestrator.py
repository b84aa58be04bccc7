"""End-to-end pipeline for one credit-metered artifact job."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import msgspec

from app.ai.result_normalizer import normalize_response
from app.config import Settings
from app.jobs.artifacts import shape_artifact
from app.jobs.dispatch import DispatchError, WebhookDispatcher
from app.jobs.models import Job, JobType
from app.notifications.fanout import ArtifactEvent, NotificationHub
from app.services.credit_ledger import CreditCommitError, CreditLedger, LedgerReadError
from app.storage.artifacts_repo import ArtifactRecord, ArtifactRepository, PersistenceError
from app.utils.ids import generate_job_id

logger = logging.getLogger(__name__)


class AuthorizationMismatch(PermissionError):
  """Raised when the caller does not own the operator id named in the request."""


@dataclass(frozen=True)
class JobOutcome:
  """Result envelope returned to the caller for one job."""

  ok: bool
  status_code: int = 200
  artifact: ArtifactRecord | None = None
  error_type: str | None = None
  message: str | None = None
  required_credits: int | None = None

  def to_envelope(self) -> dict[str, Any]:
    if self.ok:
      return {"ok": True, "data": msgspec.to_builtins(self.artifact)}
    envelope: dict[str, Any] = {"ok": False, "errorType": self.error_type, "message": self.message}
    if self.required_credits is not None:
      envelope["requiredCredits"] = self.required_credits
    return envelope


def _general_error(message: str, *, status_code: int) -> JobOutcome:
  return JobOutcome(ok=False, status_code=status_code, error_type="general_error", message=message)


class JobOrchestrator:
  """Run a job through admission, dispatch, normalization, storage, commit and notification.

  Steps run strictly in that order. Credits are committed only after the artifact is
  stored, and before the change event goes out, so a client reacting to the event
  reads a balance that already includes the charge.
  """

  def __init__(self, *, settings: Settings, ledger: CreditLedger, dispatcher: WebhookDispatcher, store: ArtifactRepository, hub: NotificationHub) -> None:
    self._settings = settings
    self._ledger = ledger
    self._dispatcher = dispatcher
    self._store = store
    self._hub = hub

  def new_job(self, job_type: JobType, *, operator_id: str, entity_id: str, fields: dict[str, Any] | None = None, job_id: str | None = None) -> Job:
    """Create a job priced from the configured credit table."""
    return Job(job_id=job_id or generate_job_id(), job_type=job_type, operator_id=operator_id, entity_id=entity_id, required_credits=self._settings.credit_cost(job_type), fields=dict(fields or {}))

  async def _load_context(self, job: Job) -> dict[str, Any]:
    records = await self._store.list_for_entity(job.operator_id, job.entity_id)
    return {record.job_type: record.payload for record in records}

  async def run(self, job: Job, *, caller_id: str) -> JobOutcome:
    """Execute the job on behalf of the authenticated caller."""
    if caller_id != job.operator_id:
      raise AuthorizationMismatch(f"caller may not act for operator {job.operator_id}")

    try:
      already_committed = await self._ledger.has_committed(job.operator_id, job.job_id)
      admission = await self._ledger.check_admission(job.operator_id, job.required_credits)
    except LedgerReadError:
      job.transition("failed")
      logger.error("Credit ledger unavailable job_id=%s operator_id=%s", job.job_id, job.operator_id, exc_info=True)
      return _general_error("Credit balance is temporarily unavailable", status_code=503)

    if already_committed:
      job.transition("rejected")
      logger.warning("Rejected reused job id job_id=%s operator_id=%s", job.job_id, job.operator_id)
      return _general_error("This job has already been completed", status_code=409)

    if not admission.admitted:
      job.transition("rejected")
      logger.info("Admission rejected job_id=%s operator_id=%s reason=%s required=%s", job.job_id, job.operator_id, admission.reason, job.required_credits)
      return JobOutcome(ok=False, error_type="subscription_error", message=admission.message, required_credits=job.required_credits)
    job.transition("admitted")

    try:
      context = await self._load_context(job)
    except PersistenceError:
      job.transition("failed")
      logger.error("Could not load stored artifacts job_id=%s entity_id=%s", job.job_id, job.entity_id, exc_info=True)
      return _general_error("Failed to load student data", status_code=500)

    try:
      raw = await self._dispatcher.dispatch(job, context)
    except DispatchError as exc:
      job.transition("failed")
      logger.error("Dispatch failed job_id=%s job_type=%s error=%s", job.job_id, job.job_type, exc)
      return _general_error("The AI service could not complete the request", status_code=502)
    job.transition("dispatched")

    normalized = normalize_response(raw, job_type=job.job_type)
    if normalized.degraded:
      logger.warning("DegradedNormalization job_id=%s job_type=%s attempts=%s", job.job_id, job.job_type, normalized.strategy_trail)
    shaped = shape_artifact(job, normalized.payload, degraded=normalized.degraded)
    job.transition("parsed")

    try:
      record = await self._store.upsert(job.operator_id, job.entity_id, job.job_type, shaped.payload, job_id=job.job_id, degraded=shaped.degraded)
    except PersistenceError:
      job.transition("failed")
      logger.error("Persisting artifact failed job_id=%s job_type=%s; credits not committed", job.job_id, job.job_type, exc_info=True)
      return _general_error("Failed to save the generated result", status_code=500)

    await self._commit_credits(job)
    self._publish(record)
    job.transition("committed")
    return JobOutcome(ok=True, artifact=record)

  async def _commit_credits(self, job: Job) -> None:
    # The artifact is already stored; a failed commit is logged, never rolled back.
    try:
      snapshot = await self._ledger.commit(job.operator_id, job.required_credits, job_id=job.job_id, job_type=job.job_type)
    except CreditCommitError:
      logger.error("Accounting anomaly operator_id=%s job_id=%s credits=%s: commit raised", job.operator_id, job.job_id, job.required_credits, exc_info=True)
      return
    if snapshot is None:
      logger.error("Accounting anomaly operator_id=%s job_id=%s credits=%s: conditional commit did not apply", job.operator_id, job.job_id, job.required_credits)
      return
    logger.info("Committed credits job_id=%s operator_id=%s credits=%s used=%s/%s", job.job_id, job.operator_id, job.required_credits, snapshot.used_credits, snapshot.max_credits)

  def _publish(self, record: ArtifactRecord) -> None:
    event = ArtifactEvent(
      event="artifact.updated",
      artifact_id=record.id,
      operator_id=record.operator_id,
      entity_id=record.entity_id,
      job_type=record.job_type,
      job_id=record.job_id,
      degraded=record.degraded,
      updated_at=record.updated_at,
      payload=record.payload,
    )
    delivered = self._hub.publish(record.operator_id, event)
    logger.debug("Published artifact event artifact_id=%s delivered=%s", record.id, delivered)

from __future__ import annotations

import json
import logging

import msgspec
from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

from app.api.deps import get_artifact_repository, get_orchestrator
from app.api.models import JOB_REQUEST_MODELS
from app.api.msgspec_utils import encode_msgspec_response
from app.core.json import InsightsJSONResponse
from app.core.security import get_current_operator_id
from app.jobs.models import is_job_type
from app.jobs.orchestrator import JobOrchestrator
from app.storage.artifacts_repo import ArtifactRecord, ArtifactRepository

logger = logging.getLogger(__name__)

router = APIRouter()


class ArtifactListResponse(msgspec.Struct):
  """Artifacts stored for one student."""

  items: list[ArtifactRecord]


@router.post("/artifacts/{job_type}")
async def run_artifact_job(
  job_type: str,
  request: Request,
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  orchestrator: JobOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> InsightsJSONResponse:
  """
  Run one artifact job end to end.

  Returns `{ok: true, data}` on success, a `subscription_error` envelope when the
  operator lacks credits or an active subscription, and a `general_error` envelope
  when the AI service or storage fails.
  """
  if not is_job_type(job_type):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown job type: {job_type}")

  try:
    body = await request.json()
  except (json.JSONDecodeError, UnicodeDecodeError) as exc:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be JSON") from exc

  request_model = JOB_REQUEST_MODELS[job_type]
  try:
    payload = request_model.model_validate(body)
  except ValidationError as exc:
    raise RequestValidationError(exc.errors()) from exc

  job = orchestrator.new_job(job_type, operator_id=payload.operator_id, entity_id=payload.entity_id, fields=payload.job_fields(), job_id=payload.job_id)
  outcome = await orchestrator.run(job, caller_id=operator_id)
  return InsightsJSONResponse(status_code=outcome.status_code, content=outcome.to_envelope())


@router.get("/students/{entity_id}/artifacts")
async def list_student_artifacts(
  entity_id: str,
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  store: ArtifactRepository = Depends(get_artifact_repository),  # noqa: B008
) -> Response:
  """List the caller's stored artifacts for a student."""
  records = await store.list_for_entity(operator_id, entity_id)
  return encode_msgspec_response(ArtifactListResponse(items=records))


@router.get("/artifacts/{artifact_id}")
async def get_artifact(
  artifact_id: str,
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  store: ArtifactRepository = Depends(get_artifact_repository),  # noqa: B008
) -> Response:
  """Fetch one artifact owned by the caller."""
  record = await store.get(artifact_id)
  # Hide other operators' artifacts behind the same 404.
  if record is None or record.operator_id != operator_id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artifact not found")
  return encode_msgspec_response(record)


@router.delete("/students/{entity_id}/artifacts/{job_type}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student_artifact(
  entity_id: str,
  job_type: str,
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  store: ArtifactRepository = Depends(get_artifact_repository),  # noqa: B008
) -> Response:
  """Delete the artifact stored for one job type."""
  if not is_job_type(job_type):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown job type: {job_type}")
  deleted = await store.delete(operator_id, entity_id, job_type)
  if not deleted:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artifact not found")
  logger.info("Deleted artifact operator_id=%s entity_id=%s job_type=%s", operator_id, entity_id, job_type)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/students/{entity_id}/parent-reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_parent_report(
  entity_id: str,
  report_id: str,
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  store: ArtifactRepository = Depends(get_artifact_repository),  # noqa: B008
) -> Response:
  """Remove one entry from the student's parent report list."""
  deleted = await store.delete_parent_report(operator_id, entity_id, report_id)
  if not deleted:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parent report not found")
  return Response(status_code=status.HTTP_204_NO_CONTENT)

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel

from app.jobs.models import JobType


class ArtifactJobRequest(BaseModel):
  """Fields shared by every artifact request."""

  operator_id: StrictStr = Field(min_length=1, description="Operator (tutor) the job runs for; must match the caller.")
  entity_id: StrictStr = Field(min_length=1, description="Student record the artifact is about.")
  job_id: StrictStr | None = Field(default=None, min_length=1, description="Optional client-generated job id.")
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

  def job_fields(self) -> dict[str, Any]:
    """Return the job-specific fields with their wire names."""
    return self.model_dump(by_alias=True, exclude={"operator_id", "entity_id", "job_id"})


class ReportJobRequest(ArtifactJobRequest):
  image_urls: list[StrictStr] = Field(min_length=1, description="Scanned exam pages to assess.")
  report_title: StrictStr = Field(min_length=1)


class CorrectionJobRequest(ArtifactJobRequest):
  exam_id: StrictStr = Field(min_length=1)
  message: StrictStr = ""
  mode: StrictStr = "correction"
  correction_id: StrictStr | None = None


class ConceptScoresJobRequest(ArtifactJobRequest):
  pass


class ExecutiveSummaryJobRequest(ArtifactJobRequest):
  pass


class ParentReportJobRequest(ArtifactJobRequest):
  report_title: StrictStr = "Parent Progress Report"
  language: StrictStr = "en"


class FocusConceptsJobRequest(ArtifactJobRequest):
  language: StrictStr = "en"
  teacher_notes: list[StrictStr] = Field(default_factory=list)


class NotesSummaryJobRequest(ArtifactJobRequest):
  language: StrictStr = "en"
  notes: list[StrictStr] = Field(min_length=1)


JOB_REQUEST_MODELS: dict[JobType, type[ArtifactJobRequest]] = {
  "report": ReportJobRequest,
  "correction": CorrectionJobRequest,
  "concept_scores": ConceptScoresJobRequest,
  "executive_summary": ExecutiveSummaryJobRequest,
  "parent_report": ParentReportJobRequest,
  "focus_concepts": FocusConceptsJobRequest,
  "notes_summary": NotesSummaryJobRequest,
}


class SubscriptionResponse(BaseModel):
  """Credit and subscription read model."""

  operator_id: StrictStr
  tier: StrictStr
  max_credits: int
  used_credits: int
  remaining_credits: int
  valid_until: str | None
  model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

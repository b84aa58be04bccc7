"""Typed artifact records and shaping of normalized payloads into them."""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass
from typing import Any

import msgspec

from app.jobs.models import Job
from app.utils.ids import generate_report_id

logger = logging.getLogger(__name__)

NO_TREND_TEXT = "No trend data available"
NO_REPORT_CONTENT = "No report content generated"
REPORT_SECTIONS = ("performance_summary", "incorrect_questions", "misunderstood_concepts", "learning_material", "practice_exercises")


class ReportArtifact(msgspec.Struct):
  performance_summary: str = ""
  incorrect_questions: str = ""
  misunderstood_concepts: str = ""
  learning_material: str = ""
  practice_exercises: str = ""
  report_title: str = ""


class CorrectionArtifact(msgspec.Struct):
  content: str
  exam_id: str
  correction_id: str | None = None


class ConceptScoreEntry(msgspec.Struct):
  score: float
  source_id: str | None = None


class ConceptRating(msgspec.Struct):
  concept: str
  score: float


class ExecutiveSummaryArtifact(msgspec.Struct):
  overall_trend_numeric: float = 0
  overall_trend_text: str = NO_TREND_TEXT
  strengths_weaknesses: str = ""
  trend_icon: str | None = None
  general_performance: str | None = None
  latest_trends: str | None = None
  standout_points: str | None = None
  top_concepts: list[ConceptRating] | None = None
  worst_concepts: list[ConceptRating] | None = None


class ParentReportEntry(msgspec.Struct):
  id: str
  title: str
  timestamp: str
  content: str
  job_id: str | None = None


class PriorityConcept(msgspec.Struct):
  concept: str
  priority: float


class FocusConceptsArtifact(msgspec.Struct):
  priority_concepts: list[PriorityConcept] = msgspec.field(default_factory=list)


class NotesSummaryArtifact(msgspec.Struct):
  ai_summary: str


@dataclass(frozen=True)
class ShapedArtifact:
  """Payload ready for the artifact store."""

  payload: Any
  degraded: bool


def _as_text(value: Any) -> str:
  """Render a loosely typed section as text."""
  if value is None:
    return ""
  if isinstance(value, str):
    return value
  if isinstance(value, list):
    return "\n".join(_as_text(item) for item in value)
  return json.dumps(value, ensure_ascii=False)


def _shape_report(payload: dict[str, Any], job: Job) -> ReportArtifact:
  if not any(name in payload for name in REPORT_SECTIONS):
    raise ValueError("report payload has none of the report sections")
  fields = {name: _as_text(payload.get(name)) for name in REPORT_SECTIONS}
  return ReportArtifact(**fields, report_title=str(job.fields.get("reportTitle") or ""))


def _shape_correction(payload: dict[str, Any], job: Job) -> CorrectionArtifact:
  content = payload.get("content")
  if content is None:
    content = payload.get("correction")
  if content is None:
    raise ValueError("correction payload has no content")
  return CorrectionArtifact(content=_as_text(content), exam_id=str(job.fields.get("examId") or ""), correction_id=job.fields.get("correctionId"))


def _shape_concept_scores(payload: dict[str, Any], job: Job) -> dict[str, list[ConceptScoreEntry]]:
  concept_map = payload.get("conceptScores", payload.get("concept_scores", payload))
  if not isinstance(concept_map, dict) or not concept_map:
    raise ValueError("concept scores payload is not a concept map")

  shaped: dict[str, list[ConceptScoreEntry]] = {}
  for concept, entries in concept_map.items():
    if not isinstance(entries, list):
      raise ValueError(f"concept {concept!r} has no score list")
    converted: list[ConceptScoreEntry] = []
    for entry in entries:
      if not isinstance(entry, dict):
        raise ValueError(f"concept {concept!r} has a malformed score entry")
      source_id = entry.get("source_id", entry.get("sourceId", entry.get("exercise_id")))
      converted.append(msgspec.convert({"score": entry.get("score"), "source_id": None if source_id is None else str(source_id)}, type=ConceptScoreEntry, strict=False))
    shaped[str(concept)] = converted
  return shaped


def _shape_executive_summary(payload: dict[str, Any], job: Job) -> ExecutiveSummaryArtifact:
  if not any(name in payload for name in ExecutiveSummaryArtifact.__struct_fields__):
    raise ValueError("executive summary payload has none of the summary fields")
  return msgspec.convert(payload, type=ExecutiveSummaryArtifact, strict=False)


def _parent_report_entry(job: Job, content: Any) -> ParentReportEntry:
  return ParentReportEntry(
    id=generate_report_id(),
    title=str(job.fields.get("reportTitle") or "Parent Progress Report"),
    timestamp=job.created_at.astimezone(datetime.UTC).isoformat(),
    content=_as_text(content) or NO_REPORT_CONTENT,
    job_id=job.job_id,
  )


def _shape_parent_report(payload: dict[str, Any], job: Job) -> dict[str, list[ParentReportEntry]]:
  content = payload.get("reportContent", payload.get("report_content"))
  return {"reports_list": [_parent_report_entry(job, content)]}


def _shape_focus_concepts(payload: dict[str, Any], job: Job) -> FocusConceptsArtifact:
  if "priority_concepts" not in payload and "priorityConcepts" not in payload:
    raise ValueError("focus concepts payload has no priority concepts")
  concepts = payload.get("priority_concepts", payload.get("priorityConcepts"))
  return msgspec.convert({"priority_concepts": concepts}, type=FocusConceptsArtifact, strict=False)


def _shape_notes_summary(payload: dict[str, Any], job: Job) -> NotesSummaryArtifact:
  for key in ("summary", "ai_summary", "output"):
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
      return NotesSummaryArtifact(ai_summary=value)
  raise ValueError("notes summary payload has no summary text")


_SHAPERS = {
  "report": _shape_report,
  "correction": _shape_correction,
  "concept_scores": _shape_concept_scores,
  "executive_summary": _shape_executive_summary,
  "parent_report": _shape_parent_report,
  "focus_concepts": _shape_focus_concepts,
  "notes_summary": _shape_notes_summary,
}


def _degraded_payload(job: Job, payload: Any) -> Any:
  text = payload.get("output") if isinstance(payload, dict) else payload
  # Parent reports are always stored as a list so degraded entries still append.
  if job.job_type == "parent_report":
    entry = _parent_report_entry(job, text if isinstance(text, str) else payload)
    return {"reports_list": [msgspec.to_builtins(entry)]}
  if job.job_type == "notes_summary":
    if isinstance(text, str) and text.strip():
      return {"ai_summary": text}
  return payload


def shape_artifact(job: Job, payload: Any, *, degraded: bool = False) -> ShapedArtifact:
  """Convert a normalized payload into the stored record for the job type.

  Never raises. A payload that does not fit the typed record is kept as-is and flagged degraded.
  """
  if degraded or not isinstance(payload, dict):
    return ShapedArtifact(payload=_degraded_payload(job, payload), degraded=True)

  shaper = _SHAPERS[job.job_type]
  try:
    shaped = shaper(payload, job)
  except (msgspec.ValidationError, ValueError, TypeError) as exc:
    logger.warning("Artifact shaping failed job_id=%s job_type=%s error=%s", job.job_id, job.job_type, exc)
    return ShapedArtifact(payload=_degraded_payload(job, payload), degraded=True)

  return ShapedArtifact(payload=msgspec.to_builtins(shaped), degraded=False)

"""Outbound webhook bodies per job type."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from app.jobs.models import Job


def _timestamp(job: Job) -> str:
  return job.created_at.isoformat()


def _as_list(value: Any) -> list[Any]:
  if value is None:
    return []
  return [value]


def render_executive_summary(summary: Any, *, level: int = 3) -> str:
  if not isinstance(summary, dict):
    return "No executive summary available."
  title = "#" * level + " Executive Summary"
  trend = summary.get("overall_trend_text") or "Not available"
  strengths = summary.get("strengths_weaknesses") or "Not available"
  return f"{title}\n\nOverall Trend: {trend}\n\nStrengths & Weaknesses:\n{strengths}"


def _scores(entries: Any) -> list[float]:
  if not isinstance(entries, list):
    return []
  return [float(entry["score"]) for entry in entries if isinstance(entry, dict) and isinstance(entry.get("score"), int | float)]


def render_concept_averages(concept_scores: Any) -> str:
  if not isinstance(concept_scores, dict) or not concept_scores:
    return "No concept mastery data available."
  lines = []
  for concept, entries in concept_scores.items():
    scores = _scores(entries)
    average = f"{sum(scores) / len(scores):g}" if scores else "N/A"
    lines.append(f"- {concept}: Average score {average}")
  return "### Concept Mastery\n\n" + "\n".join(lines)


def render_concept_scores(concept_scores: Any) -> str:
  if not isinstance(concept_scores, dict) or not concept_scores:
    return "No concept scores available."
  blocks = []
  for concept, entries in concept_scores.items():
    if isinstance(entries, list):
      score_lines = "\n  ".join(f"Score: {entry.get('score')}, Exercise: {entry.get('source_id')}" for entry in entries if isinstance(entry, dict))
    else:
      score_lines = "No detailed scores"
    blocks.append(f"## Concept: {concept}\n  {score_lines}")
  return "\n\n".join(blocks)


def render_priority_concepts(focus: Any) -> str:
  concepts = focus.get("priority_concepts") if isinstance(focus, dict) else None
  if not concepts:
    return "No focus areas identified."
  lines = [f"{index}. {item.get('concept')} (Priority: {item.get('priority')}/10)" for index, item in enumerate(concepts, start=1) if isinstance(item, dict)]
  return "### Priority Areas for Improvement\n\n" + "\n".join(lines)


def render_notes_summary(notes: Any) -> str:
  summary = notes.get("ai_summary") if isinstance(notes, dict) else None
  if not summary:
    return "No teacher notes available."
  return f"### Teacher Notes Summary\n\n{summary}"


def render_latest_report(report: Any) -> str:
  if not isinstance(report, dict):
    return "No recent assessment reports available."
  title = report.get("report_title") or "Untitled Report"
  body = report.get("performance_summary") or "*No assessment content available*"
  return f"### {title}\n\n{body}\n\n---\n\n"


def render_profile(job: Job, context: Mapping[str, Any]) -> str:
  """Render the entity's stored artifacts as the markdown profile sent with parent reports."""
  sections = [
    f"# Student Profile: {job.entity_id}",
    render_executive_summary(context.get("executive_summary")),
    render_concept_averages(context.get("concept_scores")),
    render_priority_concepts(context.get("focus_concepts")),
    render_notes_summary(context.get("notes_summary")),
    "## Recent Assessments",
    render_latest_report(context.get("report")),
  ]
  return "\n\n".join(sections)


def number_notes(notes: list[str]) -> str:
  return "\n\n".join(f"Note {index}: {note}" for index, note in enumerate(notes, start=1))


def _report_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  return {"pupilId": job.entity_id, "teacherId": job.operator_id, "imageUrls": list(job.fields.get("imageUrls", [])), "reportTitle": job.fields.get("reportTitle", ""), "timestamp": _timestamp(job)}


def _correction_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  return {"examId": job.fields.get("examId"), "teacherId": job.operator_id, "message": job.fields.get("message", ""), "mode": job.fields.get("mode", "correction"), "correctionId": job.fields.get("correctionId")}


def _concept_scores_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  return {"studentId": job.entity_id, "teacherId": job.operator_id, "reports": _as_list(context.get("report")), "corrections": _as_list(context.get("correction"))}


def _executive_summary_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  return {"studentId": job.entity_id, "teacherId": job.operator_id, "reports": _as_list(context.get("report"))}


def _parent_report_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  return {
    "studentId": job.entity_id,
    "teacherId": job.operator_id,
    "reportTitle": job.fields.get("reportTitle", "Parent Progress Report"),
    "language": job.fields.get("language", "en"),
    "timestamp": _timestamp(job),
    "profileData": render_profile(job, context),
  }


def _focus_concepts_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  teacher_notes = job.fields.get("teacherNotes") or []
  return {
    "studentId": job.entity_id,
    "teacherId": job.operator_id,
    "conceptScores": render_concept_scores(context.get("concept_scores")),
    "executiveSummary": render_executive_summary(context.get("executive_summary"), level=2),
    "teacherNotes": "\n\n".join(teacher_notes) if teacher_notes else "No teacher notes available.",
    "language": job.fields.get("language", "en"),
  }


def _notes_summary_body(job: Job, context: Mapping[str, Any]) -> dict[str, Any]:
  return {"studentId": job.entity_id, "teacherId": job.operator_id, "notes": number_notes(list(job.fields.get("notes", []))), "language": job.fields.get("language", "en")}


BODY_BUILDERS: dict[str, Callable[[Job, Mapping[str, Any]], dict[str, Any]]] = {
  "report": _report_body,
  "correction": _correction_body,
  "concept_scores": _concept_scores_body,
  "executive_summary": _executive_summary_body,
  "parent_report": _parent_report_body,
  "focus_concepts": _focus_concepts_body,
  "notes_summary": _notes_summary_body,
}


def build_request_body(job: Job, context: Mapping[str, Any] | None = None) -> dict[str, Any]:
  """Build the webhook body for a job from its fields and the entity's stored artifacts."""
  builder = BODY_BUILDERS.get(job.job_type)
  if builder is None:
    raise ValueError(f"Unsupported job type: {job.job_type}")
  return builder(job, context or {})

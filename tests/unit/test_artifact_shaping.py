"""Unit tests for shaping normalized payloads into stored artifact records."""

from __future__ import annotations

import datetime

from app.ai.result_normalizer import normalize_response
from app.jobs.artifacts import NO_REPORT_CONTENT, NO_TREND_TEXT, shape_artifact
from app.jobs.models import Job


def _job(job_type: str, **fields: object) -> Job:
  created_at = datetime.datetime(2026, 2, 14, 9, 30, tzinfo=datetime.UTC)
  return Job(job_id="job-1", job_type=job_type, operator_id="tutor-1", entity_id="student-1", required_credits=3, fields=dict(fields), created_at=created_at)


def test_report_sections_are_flattened_to_text() -> None:
  payload = {"performance_summary": "Good", "incorrect_questions": ["Q2", "Q5"], "learning_material": {"topic": "fractions"}}
  shaped = shape_artifact(_job("report", reportTitle="Midterm"), payload)
  assert shaped.degraded is False
  assert shaped.payload["performance_summary"] == "Good"
  assert shaped.payload["incorrect_questions"] == "Q2\nQ5"
  assert shaped.payload["learning_material"] == '{"topic": "fractions"}'
  assert shaped.payload["practice_exercises"] == ""
  assert shaped.payload["report_title"] == "Midterm"


def test_correction_accepts_either_content_key() -> None:
  shaped = shape_artifact(_job("correction", examId="exam-9"), {"correction": "Step 2 is wrong"})
  assert shaped.payload == {"content": "Step 2 is wrong", "exam_id": "exam-9", "correction_id": None}


def test_correction_without_content_is_degraded() -> None:
  payload = {"unexpected": True}
  shaped = shape_artifact(_job("correction", examId="exam-9"), payload)
  assert shaped.degraded is True
  assert shaped.payload == payload


def test_concept_scores_accept_bare_concept_map() -> None:
  payload = {"Fractions": [{"score": "80", "sourceId": 4}], "Decimals": [{"score": 55.5}]}
  shaped = shape_artifact(_job("concept_scores"), payload)
  assert shaped.degraded is False
  assert shaped.payload == {"Fractions": [{"score": 80.0, "source_id": "4"}], "Decimals": [{"score": 55.5, "source_id": None}]}


def test_concept_scores_with_wrapped_map() -> None:
  shaped = shape_artifact(_job("concept_scores"), {"conceptScores": {"Algebra": [{"score": 90, "source_id": "ex-1"}]}})
  assert shaped.payload == {"Algebra": [{"score": 90.0, "source_id": "ex-1"}]}


def test_executive_summary_fills_defaults() -> None:
  shaped = shape_artifact(_job("executive_summary"), {"trend_icon": "positive"})
  assert shaped.degraded is False
  assert shaped.payload["trend_icon"] == "positive"
  assert shaped.payload["overall_trend_numeric"] == 0
  assert shaped.payload["overall_trend_text"] == NO_TREND_TEXT
  assert shaped.payload["strengths_weaknesses"] == ""


def test_parent_report_is_wrapped_into_single_entry_list() -> None:
  shaped = shape_artifact(_job("parent_report", reportTitle="Spring update"), {"reportContent": "Doing well"})
  entries = shaped.payload["reports_list"]
  assert len(entries) == 1
  assert entries[0]["title"] == "Spring update"
  assert entries[0]["content"] == "Doing well"
  assert entries[0]["timestamp"] == "2026-02-14T09:30:00+00:00"
  assert entries[0]["id"]
  assert entries[0]["job_id"] == "job-1"


def test_parent_report_without_content_uses_placeholder() -> None:
  shaped = shape_artifact(_job("parent_report"), {"report_content": ""})
  assert shaped.payload["reports_list"][0]["content"] == NO_REPORT_CONTENT
  assert shaped.payload["reports_list"][0]["title"] == "Parent Progress Report"


def test_degraded_parent_report_still_appends_an_entry() -> None:
  shaped = shape_artifact(_job("parent_report"), {"output": "Plain prose report"}, degraded=True)
  assert shaped.degraded is True
  assert shaped.payload["reports_list"][0]["content"] == "Plain prose report"


def test_focus_concepts_coerce_priorities() -> None:
  shaped = shape_artifact(_job("focus_concepts"), {"priorityConcepts": [{"concept": "Ratios", "priority": "8"}]})
  assert shaped.payload == {"priority_concepts": [{"concept": "Ratios", "priority": 8.0}]}


def test_focus_concepts_with_malformed_entries_are_degraded() -> None:
  payload = {"priority_concepts": [{"priority": 3}]}
  shaped = shape_artifact(_job("focus_concepts"), payload)
  assert shaped.degraded is True
  assert shaped.payload == payload


def test_notes_summary_reads_summary_text() -> None:
  shaped = shape_artifact(_job("notes_summary"), {"summary": "Works hard, rushes tests."})
  assert shaped.payload == {"ai_summary": "Works hard, rushes tests."}


def test_degraded_notes_summary_keeps_output_text() -> None:
  shaped = shape_artifact(_job("notes_summary"), {"output": "free text summary"}, degraded=True)
  assert shaped.payload == {"ai_summary": "free text summary"}


def test_non_dict_payload_is_stored_unchanged() -> None:
  payload = [{"output": "???"}]
  shaped = shape_artifact(_job("report"), payload, degraded=True)
  assert shaped.degraded is True
  assert shaped.payload == payload


def test_report_without_any_section_is_degraded() -> None:
  normalized = normalize_response({"output": '{"summary": "Great progress on fractions"}'}, job_type="report")
  shaped = shape_artifact(_job("report", reportTitle="Midterm"), normalized.payload, degraded=normalized.degraded)
  assert shaped.degraded is True
  assert shaped.payload == {"summary": "Great progress on fractions"}


def test_executive_summary_without_known_fields_is_degraded() -> None:
  payload = {"headline": "Keeps improving"}
  shaped = shape_artifact(_job("executive_summary"), payload)
  assert shaped.degraded is True
  assert shaped.payload == payload


def test_focus_concepts_without_concept_list_is_degraded() -> None:
  payload = {"concepts": ["Ratios"]}
  shaped = shape_artifact(_job("focus_concepts"), payload)
  assert shaped.degraded is True
  assert shaped.payload == payload

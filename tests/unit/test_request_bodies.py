from __future__ import annotations

import datetime

import pytest

from app.jobs.models import Job
from app.jobs.request_bodies import build_request_body, number_notes, render_concept_averages, render_profile


def _job(job_type: str, **fields: object) -> Job:
  created_at = datetime.datetime(2026, 4, 2, 8, 0, tzinfo=datetime.UTC)
  return Job(job_id="job-1", job_type=job_type, operator_id="tutor-1", entity_id="student-1", required_credits=5, fields=dict(fields), created_at=created_at)


def test_report_body_carries_scans_and_title() -> None:
  body = build_request_body(_job("report", imageUrls=["https://img/1.png"], reportTitle="Quiz 3"))
  assert body == {"pupilId": "student-1", "teacherId": "tutor-1", "imageUrls": ["https://img/1.png"], "reportTitle": "Quiz 3", "timestamp": "2026-04-02T08:00:00+00:00"}


def test_correction_body_defaults_mode() -> None:
  body = build_request_body(_job("correction", examId="exam-1"))
  assert body["mode"] == "correction"
  assert body["message"] == ""
  assert body["examId"] == "exam-1"


def test_concept_scores_body_sends_stored_reports_and_corrections() -> None:
  context = {"report": {"performance_summary": "x"}, "correction": {"content": "y"}}
  body = build_request_body(_job("concept_scores"), context)
  assert body["reports"] == [{"performance_summary": "x"}]
  assert body["corrections"] == [{"content": "y"}]


def test_concept_scores_body_without_history_sends_empty_lists() -> None:
  body = build_request_body(_job("concept_scores"))
  assert body["reports"] == []
  assert body["corrections"] == []


def test_notes_are_numbered() -> None:
  assert number_notes(["Late twice", "Great effort"]) == "Note 1: Late twice\n\nNote 2: Great effort"
  body = build_request_body(_job("notes_summary", notes=["Late twice"], language="de"))
  assert body["notes"] == "Note 1: Late twice"
  assert body["language"] == "de"


def test_concept_averages_skip_non_numeric_scores() -> None:
  text = render_concept_averages({"Fractions": [{"score": 80}, {"score": 60}, {"score": "n/a"}], "Geometry": []})
  assert "- Fractions: Average score 70" in text
  assert "- Geometry: Average score N/A" in text


def test_parent_report_profile_uses_placeholders_for_missing_artifacts() -> None:
  profile = render_profile(_job("parent_report"), {})
  assert profile.startswith("# Student Profile: student-1")
  assert "No executive summary available." in profile
  assert "No concept mastery data available." in profile
  assert "No focus areas identified." in profile
  assert "No teacher notes available." in profile
  assert "No recent assessment reports available." in profile


def test_focus_concepts_body_renders_stored_context() -> None:
  context = {"executive_summary": {"overall_trend_text": "Improving"}, "concept_scores": {"Ratios": [{"score": 40, "source_id": "ex-2"}]}}
  body = build_request_body(_job("focus_concepts", teacherNotes=["Needs ratio drills"]), context)
  assert body["executiveSummary"].startswith("## Executive Summary")
  assert "Overall Trend: Improving" in body["executiveSummary"]
  assert "## Concept: Ratios" in body["conceptScores"]
  assert "Score: 40, Exercise: ex-2" in body["conceptScores"]
  assert body["teacherNotes"] == "Needs ratio drills"


def test_unknown_job_type_is_rejected() -> None:
  with pytest.raises(ValueError):
    build_request_body(_job("homework"))

"""Domain models for credit-metered artifact jobs."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Literal, get_args

JobType = Literal["report", "correction", "concept_scores", "executive_summary", "parent_report", "focus_concepts", "notes_summary"]
JobStatus = Literal["requested", "admitted", "dispatched", "parsed", "committed", "rejected", "failed"]

JOB_TYPES: tuple[str, ...] = get_args(JobType)
TERMINAL_STATUSES: frozenset[str] = frozenset({"committed", "rejected", "failed"})

# Parent reports accumulate; every other job type overwrites its slot.
APPEND_ONLY_JOB_TYPES: frozenset[str] = frozenset({"parent_report"})


def is_job_type(value: str) -> bool:
  """Return True when the value names a supported job type."""
  return value in JOB_TYPES


@dataclass
class Job:
  """One in-flight artifact request; lives only for the duration of the invocation."""

  job_id: str
  job_type: JobType
  operator_id: str
  entity_id: str
  required_credits: int
  fields: dict[str, Any] = field(default_factory=dict)
  status: JobStatus = "requested"
  created_at: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.UTC))
  history: list[JobStatus] = field(default_factory=lambda: ["requested"])

  def transition(self, status: JobStatus) -> None:
    """Move the job to a new status; terminal statuses are final."""
    if self.status in TERMINAL_STATUSES:
      raise RuntimeError(f"job {self.job_id} already finished with status {self.status}")
    self.status = status
    self.history.append(status)

  @property
  def finished(self) -> bool:
    return self.status in TERMINAL_STATUSES

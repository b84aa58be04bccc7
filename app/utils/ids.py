"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_job_id() -> str:
  """Return a new job identifier."""
  return str(uuid.uuid4())


def generate_report_id() -> str:
  """Return a random 128-bit identifier for an appended parent report."""
  return str(uuid.uuid4())

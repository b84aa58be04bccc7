"""Extract structured payloads from loosely formatted AI webhook responses.

The webhook may answer with the target object itself, with an ``output`` string
holding JSON (raw, fenced in a markdown block, or with escaped quotes), or with a
list whose first element carries such an ``output``. ``normalize_response`` walks a
fixed list of strategies and stops at the first one that yields a JSON object.
When every strategy fails the original response comes back untouched and the
result is flagged as degraded.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_FENCED_JSON_RE = re.compile(r"```json\s*\n([\s\S]*?)\n\s*```")
_BRACE_SPAN_RE = re.compile(r"\{[\s\S]*\}")

STRATEGY_ALREADY_SHAPED = "already_shaped"
STRATEGY_DIRECT_OUTPUT = "direct_output"
STRATEGY_FENCED_BLOCK = "fenced_block"
STRATEGY_ESCAPED_CLEANUP = "escaped_cleanup"
STRATEGY_BRACE_SCAN = "brace_scan"
STRATEGY_LEGACY_ARRAY = "legacy_array"


@dataclass(frozen=True)
class ExtractionAttempt:
  """One strategy tried during normalization."""

  strategy_name: str
  succeeded: bool
  value: Any = None


@dataclass(frozen=True)
class NormalizationResult:
  """Normalized payload plus the trail of strategies that produced it."""

  payload: Any
  strategy: str | None
  degraded: bool
  attempts: tuple[ExtractionAttempt, ...]

  @property
  def strategy_trail(self) -> list[str]:
    return [f"{attempt.strategy_name}:{'ok' if attempt.succeeded else 'miss'}" for attempt in self.attempts]


def _has_any_key(*keys: str) -> Callable[[dict[str, Any]], bool]:
  def _check(value: dict[str, Any]) -> bool:
    return any(key in value for key in keys)

  return _check


def _looks_like_concept_scores(value: dict[str, Any]) -> bool:
  if "conceptScores" in value or "concept_scores" in value:
    return True
  if not value:
    return False
  # A bare concept map: every value is a list of score entries.
  for entries in value.values():
    if not isinstance(entries, list):
      return False
    if not all(isinstance(entry, dict) and "score" in entry for entry in entries):
      return False
  return True


_SHAPE_CHECKS: dict[str, Callable[[dict[str, Any]], bool]] = {
  "report": _has_any_key("performance_summary", "incorrect_questions", "misunderstood_concepts", "learning_material", "practice_exercises"),
  "correction": _has_any_key("content", "correction"),
  "concept_scores": _looks_like_concept_scores,
  "executive_summary": _has_any_key("general_performance", "overall_trend_text", "overall_trend_numeric", "trend_icon", "strengths_weaknesses"),
  "parent_report": _has_any_key("reportContent", "report_content"),
  "focus_concepts": _has_any_key("priority_concepts", "priorityConcepts"),
  "notes_summary": _has_any_key("summary", "ai_summary"),
}


def is_already_shaped(raw: Any, job_type: str | None) -> bool:
  """Return True when the response already carries the job type's top-level keys."""
  if not isinstance(raw, dict) or job_type is None:
    return False
  check = _SHAPE_CHECKS.get(job_type)
  if check is None:
    return False
  return check(raw)


def _try_parse(text: str) -> Any | None:
  """Parse text as JSON and keep only object or array results."""
  try:
    parsed = json.loads(text)
  except (json.JSONDecodeError, TypeError, ValueError):
    return None
  if isinstance(parsed, dict | list):
    return parsed
  return None


def _unescape(text: str) -> str:
  return text.replace("\\n", "\n").replace('\\"', '"').replace("\\\\", "\\")


def _extract_from_output(output: Any, attempts: list[ExtractionAttempt]) -> tuple[str, Any] | None:
  """Run the output-field strategies in order and return (strategy, value) on the first hit."""
  # Some webhooks already hand back a JSON object under output.
  if isinstance(output, dict):
    attempts.append(ExtractionAttempt(STRATEGY_DIRECT_OUTPUT, True, output))
    return STRATEGY_DIRECT_OUTPUT, output
  if not isinstance(output, str):
    attempts.append(ExtractionAttempt(STRATEGY_DIRECT_OUTPUT, False))
    return None

  parsed = _try_parse(output)
  attempts.append(ExtractionAttempt(STRATEGY_DIRECT_OUTPUT, parsed is not None, parsed))
  if parsed is not None:
    return STRATEGY_DIRECT_OUTPUT, parsed

  # First fenced block only.
  candidate = output
  match = _FENCED_JSON_RE.search(output)
  if match is not None:
    candidate = match.group(1)
    parsed = _try_parse(candidate)
    attempts.append(ExtractionAttempt(STRATEGY_FENCED_BLOCK, parsed is not None, parsed))
    if parsed is not None:
      return STRATEGY_FENCED_BLOCK, parsed
  else:
    attempts.append(ExtractionAttempt(STRATEGY_FENCED_BLOCK, False))

  parsed = _try_parse(_unescape(candidate))
  attempts.append(ExtractionAttempt(STRATEGY_ESCAPED_CLEANUP, parsed is not None, parsed))
  if parsed is not None:
    return STRATEGY_ESCAPED_CLEANUP, parsed

  span = _BRACE_SPAN_RE.search(output)
  parsed = _try_parse(span.group(0)) if span is not None else None
  attempts.append(ExtractionAttempt(STRATEGY_BRACE_SCAN, parsed is not None, parsed))
  if parsed is not None:
    return STRATEGY_BRACE_SCAN, parsed

  return None


def normalize_response(raw: Any, *, job_type: str | None = None) -> NormalizationResult:
  """Extract a structured payload from a webhook response.

  Never raises. Identical input always yields the identical payload and strategy.
  """
  attempts: list[ExtractionAttempt] = []

  shaped = is_already_shaped(raw, job_type)
  attempts.append(ExtractionAttempt(STRATEGY_ALREADY_SHAPED, shaped, raw if shaped else None))
  if shaped:
    return NormalizationResult(payload=raw, strategy=STRATEGY_ALREADY_SHAPED, degraded=False, attempts=tuple(attempts))

  # A bare string body is treated like the content of an output field.
  output: Any = None
  if isinstance(raw, dict):
    output = raw.get("output")
  elif isinstance(raw, str):
    output = raw

  if output is not None:
    hit = _extract_from_output(output, attempts)
    if hit is not None:
      strategy, value = hit
      return NormalizationResult(payload=value, strategy=strategy, degraded=False, attempts=tuple(attempts))

  if isinstance(raw, list) and raw and isinstance(raw[0], dict) and "output" in raw[0]:
    nested: list[ExtractionAttempt] = []
    hit = _extract_from_output(raw[0]["output"], nested)
    attempts.extend(ExtractionAttempt(f"{STRATEGY_LEGACY_ARRAY}.{attempt.strategy_name}", attempt.succeeded, attempt.value) for attempt in nested)
    if hit is not None:
      strategy, value = hit
      return NormalizationResult(payload=value, strategy=f"{STRATEGY_LEGACY_ARRAY}.{strategy}", degraded=False, attempts=tuple(attempts))
  else:
    attempts.append(ExtractionAttempt(STRATEGY_LEGACY_ARRAY, False))

  return NormalizationResult(payload=raw, strategy=None, degraded=True, attempts=tuple(attempts))

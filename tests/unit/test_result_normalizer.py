"""Unit tests for webhook response normalization."""

from __future__ import annotations

import copy

from app.ai.result_normalizer import (
  STRATEGY_ALREADY_SHAPED,
  STRATEGY_BRACE_SCAN,
  STRATEGY_DIRECT_OUTPUT,
  STRATEGY_ESCAPED_CLEANUP,
  STRATEGY_FENCED_BLOCK,
  normalize_response,
)


def test_fenced_json_block_is_extracted() -> None:
  raw = {"output": '```json\n{"trend_icon":"positive"}\n```'}
  result = normalize_response(raw, job_type="executive_summary")
  assert result.payload == {"trend_icon": "positive"}
  assert result.strategy == STRATEGY_FENCED_BLOCK
  assert result.degraded is False


def test_escaped_quotes_are_cleaned_after_direct_parse_fails() -> None:
  raw = {"output": '{\\"a\\":1}'}
  result = normalize_response(raw)
  assert result.payload == {"a": 1}
  assert result.strategy == STRATEGY_ESCAPED_CLEANUP
  assert result.strategy_trail[:3] == ["already_shaped:miss", "direct_output:miss", "fenced_block:miss"]


def test_already_shaped_response_is_returned_as_is() -> None:
  raw = {"performance_summary": "Solid work", "practice_exercises": "Drill 4"}
  result = normalize_response(raw, job_type="report")
  assert result.payload is raw
  assert result.strategy == STRATEGY_ALREADY_SHAPED


def test_output_string_holding_plain_json_parses_directly() -> None:
  result = normalize_response({"output": '{"priority_concepts": []}'}, job_type="report")
  assert result.payload == {"priority_concepts": []}
  assert result.strategy == STRATEGY_DIRECT_OUTPUT


def test_output_object_is_used_directly() -> None:
  result = normalize_response({"output": {"summary": "Keeps notes tidy"}})
  assert result.payload == {"summary": "Keeps notes tidy"}
  assert result.strategy == STRATEGY_DIRECT_OUTPUT


def test_fenced_block_wins_over_brace_scan() -> None:
  output = 'Preface {"decoy": true} text\n```json\n{"chosen": 1}\n```\ntrailing {"other": 2}'
  result = normalize_response({"output": output})
  assert result.payload == {"chosen": 1}
  assert result.strategy == STRATEGY_FENCED_BLOCK


def test_only_first_fenced_block_is_used() -> None:
  output = '```json\n{"first": 1}\n```\n\n```json\n{"second": 2}\n```'
  result = normalize_response({"output": output})
  assert result.payload == {"first": 1}


def test_brace_scan_recovers_object_surrounded_by_prose() -> None:
  result = normalize_response({"output": 'Here you go: {"content": "x"} hope that helps'})
  assert result.payload == {"content": "x"}
  assert result.strategy == STRATEGY_BRACE_SCAN


def test_legacy_array_output_is_unwrapped() -> None:
  raw = [{"output": '```json\n{"ai_summary": "short"}\n```'}]
  result = normalize_response(raw, job_type="notes_summary")
  assert result.payload == {"ai_summary": "short"}
  assert result.strategy == "legacy_array.fenced_block"
  assert result.degraded is False


def test_unparseable_output_returns_raw_unchanged_and_degraded() -> None:
  raw = {"output": "The model refused to answer."}
  snapshot = copy.deepcopy(raw)
  result = normalize_response(raw, job_type="report")
  assert result.payload is raw
  assert raw == snapshot
  assert result.degraded is True
  assert result.strategy is None
  assert result.strategy_trail[-1] == "legacy_array:miss"


def test_scalar_json_output_is_not_accepted() -> None:
  result = normalize_response({"output": "42"})
  assert result.degraded is True


def test_non_string_inputs_never_raise() -> None:
  for raw in (None, 3, [], [1, 2], {"output": None}, {"output": 7}):
    result = normalize_response(raw, job_type="correction")
    assert result.degraded is True
    assert result.payload == raw


def test_normalization_is_deterministic() -> None:
  raw = {"output": 'noise {"content": "same"} noise'}
  first = normalize_response(raw, job_type="correction")
  second = normalize_response(raw, job_type="correction")
  assert first.payload == second.payload
  assert first.strategy == second.strategy
  assert first.strategy_trail == second.strategy_trail

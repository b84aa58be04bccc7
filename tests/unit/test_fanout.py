"""Unit tests for operator-scoped notification fan-out."""

from __future__ import annotations

import pytest

from app.api.routes.notifications import format_sse
from app.notifications.fanout import ArtifactEvent, NotificationHub


def _event(operator_id: str = "tutor-1", artifact_id: str = "artifact-1") -> ArtifactEvent:
  return ArtifactEvent(
    event="artifact.updated",
    artifact_id=artifact_id,
    operator_id=operator_id,
    entity_id="student-1",
    job_type="report",
    job_id="job-1",
    degraded=False,
    updated_at="2026-01-01T00:00:00+00:00",
  )


@pytest.mark.anyio
async def test_events_reach_only_the_owning_operator() -> None:
  hub = NotificationHub()

  async with hub.subscribe("tutor-1") as own_queue, hub.subscribe("tutor-2") as other_queue:
    delivered = hub.publish("tutor-1", _event())

    assert delivered == 1
    assert own_queue.get_nowait().artifact_id == "artifact-1"
    assert other_queue.empty()


@pytest.mark.anyio
async def test_every_live_subscriber_of_an_operator_receives_the_event() -> None:
  hub = NotificationHub()

  async with hub.subscribe("tutor-1") as first, hub.subscribe("tutor-1") as second:
    assert hub.subscriber_count("tutor-1") == 2
    assert hub.publish("tutor-1", _event()) == 2
    assert first.qsize() == 1
    assert second.qsize() == 1


@pytest.mark.anyio
async def test_unsubscribe_on_exit_and_no_replay() -> None:
  hub = NotificationHub()

  async with hub.subscribe("tutor-1"):
    pass
  assert hub.subscriber_count("tutor-1") == 0
  assert hub.publish("tutor-1", _event()) == 0

  async with hub.subscribe("tutor-1") as late_queue:
    assert late_queue.empty()


@pytest.mark.anyio
async def test_full_queue_drops_the_event_without_blocking() -> None:
  hub = NotificationHub(queue_size=1)

  async with hub.subscribe("tutor-1") as queue:
    assert hub.publish("tutor-1", _event(artifact_id="a1")) == 1
    assert hub.publish("tutor-1", _event(artifact_id="a2")) == 0
    assert queue.qsize() == 1
    assert queue.get_nowait().artifact_id == "a1"


def test_queue_size_must_be_positive() -> None:
  with pytest.raises(ValueError):
    NotificationHub(queue_size=0)


def test_sse_frame_uses_camel_case_fields() -> None:
  frame = format_sse(_event())
  assert frame.startswith("event: artifact.updated\ndata: ")
  assert frame.endswith("\n\n")
  assert '"artifactId":"artifact-1"' in frame
  assert '"operatorId":"tutor-1"' in frame

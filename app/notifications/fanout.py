"""Operator-scoped, in-process fan-out of artifact change events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import msgspec

logger = logging.getLogger(__name__)


class ArtifactEvent(msgspec.Struct, rename="camel"):
  """Change event pushed to live clients after an artifact is stored."""

  event: str
  artifact_id: str
  operator_id: str
  entity_id: str
  job_type: str
  job_id: str
  degraded: bool
  updated_at: str
  payload: Any = None


class NotificationHub:
  """Deliver events to the live subscribers of one operator.

  Delivery is at-most-once and best-effort: a subscriber whose queue is full
  misses the event, and nothing is replayed for clients that connect later.
  """

  def __init__(self, *, queue_size: int = 100) -> None:
    if queue_size <= 0:
      raise ValueError("queue_size must be positive.")
    self._queue_size = queue_size
    self._subscribers: dict[str, set[asyncio.Queue[ArtifactEvent]]] = {}

  def subscriber_count(self, operator_id: str) -> int:
    return len(self._subscribers.get(operator_id, ()))

  @asynccontextmanager
  async def subscribe(self, operator_id: str) -> AsyncIterator[asyncio.Queue[ArtifactEvent]]:
    """Register a live subscriber for the operator until the context exits."""
    queue: asyncio.Queue[ArtifactEvent] = asyncio.Queue(maxsize=self._queue_size)
    self._subscribers.setdefault(operator_id, set()).add(queue)
    logger.debug("Subscriber attached operator_id=%s total=%s", operator_id, self.subscriber_count(operator_id))
    try:
      yield queue
    finally:
      queues = self._subscribers.get(operator_id)
      if queues is not None:
        queues.discard(queue)
        if not queues:
          self._subscribers.pop(operator_id, None)
      logger.debug("Subscriber detached operator_id=%s", operator_id)

  def publish(self, operator_id: str, event: ArtifactEvent) -> int:
    """Push the event to every subscriber of the operator and return how many received it."""
    delivered = 0
    for queue in list(self._subscribers.get(operator_id, ())):
      try:
        queue.put_nowait(event)
      except asyncio.QueueFull:
        logger.warning("Dropping event for slow subscriber operator_id=%s artifact_id=%s", operator_id, event.artifact_id)
        continue
      delivered += 1
    return delivered

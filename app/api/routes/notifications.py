from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import msgspec
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.api.deps import get_notification_hub
from app.core.security import get_current_operator_id
from app.notifications.fanout import ArtifactEvent, NotificationHub

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


def format_sse(event: ArtifactEvent) -> str:
  """Render one event as a server-sent events frame."""
  data = msgspec.json.encode(event).decode("utf-8")
  return f"event: {event.event}\ndata: {data}\n\n"


async def _event_stream(request: Request, hub: NotificationHub, operator_id: str) -> AsyncIterator[str]:
  async with hub.subscribe(operator_id) as queue:
    yield ": connected\n\n"
    while True:
      if await request.is_disconnected():
        logger.debug("Notification stream closed by client operator_id=%s", operator_id)
        break
      try:
        event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
      except TimeoutError:
        yield ": keepalive\n\n"
        continue
      yield format_sse(event)


@router.get("/stream")
async def stream_notifications(
  request: Request,
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  hub: NotificationHub = Depends(get_notification_hub),  # noqa: B008
) -> StreamingResponse:
  """Stream artifact change events for the caller's students."""
  return StreamingResponse(_event_stream(request, hub, operator_id), media_type="text/event-stream", headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"})

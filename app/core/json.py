"""Custom JSON handling."""

from __future__ import annotations

import datetime
import json
import uuid
from typing import Any

from fastapi.responses import JSONResponse


class InsightsJSONEncoder(json.JSONEncoder):
  """JSON encoder that also handles UUIDs and datetimes coming from the database."""

  def default(self, obj: Any) -> Any:
    if isinstance(obj, uuid.UUID):
      return str(obj)
    if isinstance(obj, datetime.datetime | datetime.date):
      return obj.isoformat()
    return super().default(obj)


class InsightsJSONResponse(JSONResponse):
  """JSONResponse that renders compact UTF-8 with InsightsJSONEncoder."""

  def render(self, content: Any) -> bytes:
    return json.dumps(content, ensure_ascii=False, allow_nan=False, indent=None, separators=(",", ":"), cls=InsightsJSONEncoder).encode("utf-8")

"""SQLAlchemy model for persisted job artifacts."""

from __future__ import annotations

import datetime
import uuid

from app.core.database import Base
from sqlalchemy import Boolean, DateTime, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column


class Artifact(Base):
  """Latest artifact per (operator, entity, job type); parent reports accumulate in the payload."""

  __tablename__ = "artifacts"
  __table_args__ = (UniqueConstraint("operator_id", "entity_id", "job_type", name="ux_artifacts_owner_slot"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  operator_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  entity_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  job_id: Mapped[str] = mapped_column(String, nullable=False)
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
  degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

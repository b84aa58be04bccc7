"""SQLAlchemy models for operator subscriptions and credit accounting."""

from __future__ import annotations

import datetime
import uuid

from app.core.database import Base
from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column


class Subscription(Base):
  """Credit balance and validity window for one operator."""

  __tablename__ = "subscriptions"
  __table_args__ = (CheckConstraint("used_credits <= max_credits", name="ck_subscriptions_used_within_max"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  operator_id: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  tier: Mapped[str] = mapped_column(String, nullable=False)
  max_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  used_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
  valid_until: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class CreditUsageLog(Base):
  """Append-only record of committed credits, one row per operator job."""

  __tablename__ = "credit_usage_logs"
  __table_args__ = (UniqueConstraint("operator_id", "job_id", name="ux_credit_usage_logs_operator_job"),)

  id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
  operator_id: Mapped[str] = mapped_column(String, index=True, nullable=False)
  job_id: Mapped[str] = mapped_column(String, nullable=False)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  credits: Mapped[int] = mapped_column(Integer, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

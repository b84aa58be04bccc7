"""Create subscriptions, credit usage logs and artifacts tables.

Revision ID: 5b1f0c7e2a41
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "5b1f0c7e2a41"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "subscriptions",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("operator_id", sa.String(), nullable=False),
    sa.Column("tier", sa.String(), nullable=False),
    sa.Column("max_credits", sa.Integer(), server_default="0", nullable=False),
    sa.Column("used_credits", sa.Integer(), server_default="0", nullable=False),
    sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.CheckConstraint("used_credits <= max_credits", name="ck_subscriptions_used_within_max"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_subscriptions_operator_id"), "subscriptions", ["operator_id"], unique=True)

  op.create_table(
    "credit_usage_logs",
    sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
    sa.Column("operator_id", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("credits", sa.Integer(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("operator_id", "job_id", name="ux_credit_usage_logs_operator_job"),
  )
  op.create_index(op.f("ix_credit_usage_logs_operator_id"), "credit_usage_logs", ["operator_id"], unique=False)

  op.create_table(
    "artifacts",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("operator_id", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=False),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("degraded", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("operator_id", "entity_id", "job_type", name="ux_artifacts_owner_slot"),
  )
  op.create_index(op.f("ix_artifacts_operator_id"), "artifacts", ["operator_id"], unique=False)
  op.create_index(op.f("ix_artifacts_entity_id"), "artifacts", ["entity_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_artifacts_entity_id"), table_name="artifacts")
  op.drop_index(op.f("ix_artifacts_operator_id"), table_name="artifacts")
  op.drop_table("artifacts")
  op.drop_index(op.f("ix_credit_usage_logs_operator_id"), table_name="credit_usage_logs")
  op.drop_table("credit_usage_logs")
  op.drop_index(op.f("ix_subscriptions_operator_id"), table_name="subscriptions")
  op.drop_table("subscriptions")

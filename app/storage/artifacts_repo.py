"""Artifact persistence: one slot per (operator, entity, job type)."""

from __future__ import annotations

import copy
import datetime
import logging
import uuid
from typing import Any, Protocol

import msgspec
from sqlalchemy import Boolean, Insert, case, cast, delete, func, literal, select
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.core.database import get_session_factory
from app.jobs.models import APPEND_ONLY_JOB_TYPES
from app.schema.artifacts import Artifact

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
  """Raised when the artifact store cannot complete a write or read."""


class ArtifactRecord(msgspec.Struct, rename="camel"):
  """Stored artifact returned to callers and API clients."""

  id: str
  operator_id: str
  entity_id: str
  job_type: str
  job_id: str
  payload: Any
  degraded: bool
  created_at: str
  updated_at: str


class ArtifactRepository(Protocol):
  """Repository contract for artifact persistence."""

  async def upsert(self, operator_id: str, entity_id: str, job_type: str, payload: Any, *, job_id: str, degraded: bool = False) -> ArtifactRecord:
    """Write the latest artifact for the slot; parent reports append instead."""

  async def get(self, artifact_id: str) -> ArtifactRecord | None:
    """Fetch an artifact by id."""

  async def get_for_entity(self, operator_id: str, entity_id: str, job_type: str) -> ArtifactRecord | None:
    """Fetch the artifact occupying one slot."""

  async def list_for_entity(self, operator_id: str, entity_id: str) -> list[ArtifactRecord]:
    """List all artifacts the operator holds for an entity."""

  async def delete(self, operator_id: str, entity_id: str, job_type: str) -> bool:
    """Remove one slot; returns False when nothing was stored."""

  async def delete_parent_report(self, operator_id: str, entity_id: str, report_id: str) -> bool:
    """Remove one entry from the parent report list."""


def _isoformat(value: datetime.datetime) -> str:
  return value.astimezone(datetime.UTC).isoformat()


def _record_from_row(row: Artifact) -> ArtifactRecord:
  return ArtifactRecord(
    id=str(row.id),
    operator_id=row.operator_id,
    entity_id=row.entity_id,
    job_type=row.job_type,
    job_id=row.job_id,
    payload=row.payload,
    degraded=bool(row.degraded),
    created_at=_isoformat(row.created_at),
    updated_at=_isoformat(row.updated_at),
  )


def _reports_list(payload: Any) -> list[Any]:
  if isinstance(payload, dict) and isinstance(payload.get("reports_list"), list):
    return list(payload["reports_list"])
  return []


def _appended_reports(existing: Any, new: Any) -> list[Any]:
  """Append new report entries, skipping any whose job id is already in the stored list."""
  stored = _reports_list(existing)
  seen_jobs = {entry.get("job_id") for entry in stored if isinstance(entry, dict) and entry.get("job_id")}
  return stored + [entry for entry in _reports_list(new) if not (isinstance(entry, dict) and entry.get("job_id") in seen_jobs)]


def build_upsert_statement(operator_id: str, entity_id: str, job_type: str, payload: Any, *, job_id: str, degraded: bool) -> Insert:
  """Build the single INSERT ... ON CONFLICT statement for an artifact slot."""
  stmt = insert(Artifact).values(id=uuid.uuid4(), operator_id=operator_id, entity_id=entity_id, job_type=job_type, job_id=job_id, payload=payload, degraded=degraded)
  if job_type in APPEND_ONLY_JOB_TYPES:
    # Append the new entries onto the stored list inside the database.
    stored_list = func.coalesce(Artifact.payload["reports_list"], cast(literal("[]"), JSONB))
    appended = stored_list.op("||", return_type=JSONB)(stmt.excluded.payload["reports_list"])
    appended_payload = Artifact.payload.op("||", return_type=JSONB)(func.jsonb_build_object("reports_list", appended))
    # A retried job whose entry is already stored leaves the row as it is.
    already_stored = stored_list.op("@>", return_type=Boolean)(func.jsonb_build_array(func.jsonb_build_object("job_id", stmt.excluded.job_id)))
    new_payload = case((already_stored, Artifact.payload), else_=appended_payload)
    degraded_value = case((already_stored, Artifact.degraded), else_=stmt.excluded.degraded)
  else:
    new_payload = stmt.excluded.payload
    degraded_value = stmt.excluded.degraded
  update_values = {"payload": new_payload, "job_id": stmt.excluded.job_id, "degraded": degraded_value, "updated_at": func.now()}
  return stmt.on_conflict_do_update(constraint="ux_artifacts_owner_slot", set_=update_values).returning(Artifact)


class PostgresArtifactRepository:
  """Persist artifacts to Postgres using SQLAlchemy."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory

  def _sessions(self) -> async_sessionmaker[AsyncSession]:
    session_factory = self._session_factory or get_session_factory()
    if session_factory is None:
      raise PersistenceError("Database connection is not configured (INSIGHTS_PG_DSN is missing).")
    return session_factory

  async def upsert(self, operator_id: str, entity_id: str, job_type: str, payload: Any, *, job_id: str, degraded: bool = False) -> ArtifactRecord:
    stmt = build_upsert_statement(operator_id, entity_id, job_type, payload, job_id=job_id, degraded=degraded)
    try:
      async with self._sessions()() as session:
        async with session.begin():
          result = await session.execute(stmt, execution_options={"populate_existing": True})
          row = result.scalar_one()
          return _record_from_row(row)
    except SQLAlchemyError as exc:
      raise PersistenceError(f"artifact upsert failed for job {job_id}") from exc

  async def get(self, artifact_id: str) -> ArtifactRecord | None:
    try:
      parsed_id = uuid.UUID(artifact_id)
    except ValueError:
      return None
    try:
      async with self._sessions()() as session:
        row = await session.get(Artifact, parsed_id)
        return _record_from_row(row) if row is not None else None
    except SQLAlchemyError as exc:
      raise PersistenceError(f"artifact lookup failed for {artifact_id}") from exc

  async def get_for_entity(self, operator_id: str, entity_id: str, job_type: str) -> ArtifactRecord | None:
    stmt = select(Artifact).where(Artifact.operator_id == operator_id, Artifact.entity_id == entity_id, Artifact.job_type == job_type)
    try:
      async with self._sessions()() as session:
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
        return _record_from_row(row) if row is not None else None
    except SQLAlchemyError as exc:
      raise PersistenceError(f"artifact lookup failed for entity {entity_id}") from exc

  async def list_for_entity(self, operator_id: str, entity_id: str) -> list[ArtifactRecord]:
    stmt = select(Artifact).where(Artifact.operator_id == operator_id, Artifact.entity_id == entity_id).order_by(Artifact.job_type.asc())
    try:
      async with self._sessions()() as session:
        result = await session.execute(stmt)
        return [_record_from_row(row) for row in result.scalars().all()]
    except SQLAlchemyError as exc:
      raise PersistenceError(f"artifact listing failed for entity {entity_id}") from exc

  async def delete(self, operator_id: str, entity_id: str, job_type: str) -> bool:
    stmt = delete(Artifact).where(Artifact.operator_id == operator_id, Artifact.entity_id == entity_id, Artifact.job_type == job_type).returning(Artifact.id)
    try:
      async with self._sessions()() as session:
        async with session.begin():
          result = await session.execute(stmt)
          return result.first() is not None
    except SQLAlchemyError as exc:
      raise PersistenceError(f"artifact delete failed for entity {entity_id}") from exc

  async def delete_parent_report(self, operator_id: str, entity_id: str, report_id: str) -> bool:
    stmt = select(Artifact).where(Artifact.operator_id == operator_id, Artifact.entity_id == entity_id, Artifact.job_type == "parent_report").with_for_update()
    try:
      async with self._sessions()() as session:
        async with session.begin():
          result = await session.execute(stmt)
          row = result.scalar_one_or_none()
          if row is None:
            return False
          reports = _reports_list(row.payload)
          remaining = [entry for entry in reports if not (isinstance(entry, dict) and entry.get("id") == report_id)]
          if len(remaining) == len(reports):
            return False
          # Reassign the whole document so the JSONB change is flushed.
          row.payload = {**row.payload, "reports_list": remaining}
          session.add(row)
          return True
    except SQLAlchemyError as exc:
      raise PersistenceError(f"parent report delete failed for entity {entity_id}") from exc


class InMemoryArtifactRepository:
  """Process-local artifact store used when Postgres is not configured."""

  def __init__(self) -> None:
    self._rows: dict[tuple[str, str, str], ArtifactRecord] = {}

  async def upsert(self, operator_id: str, entity_id: str, job_type: str, payload: Any, *, job_id: str, degraded: bool = False) -> ArtifactRecord:
    key = (operator_id, entity_id, job_type)
    now = _isoformat(datetime.datetime.now(datetime.UTC))
    existing = self._rows.get(key)
    stored_payload = copy.deepcopy(payload)
    if job_type in APPEND_ONLY_JOB_TYPES and existing is not None:
      stored_payload = {**existing.payload, "reports_list": _appended_reports(existing.payload, stored_payload)}
    if existing is None:
      record = ArtifactRecord(id=str(uuid.uuid4()), operator_id=operator_id, entity_id=entity_id, job_type=job_type, job_id=job_id, payload=stored_payload, degraded=degraded, created_at=now, updated_at=now)
    else:
      record = msgspec.structs.replace(existing, job_id=job_id, payload=stored_payload, degraded=degraded, updated_at=now)
    self._rows[key] = record
    return record

  async def get(self, artifact_id: str) -> ArtifactRecord | None:
    for record in self._rows.values():
      if record.id == artifact_id:
        return record
    return None

  async def get_for_entity(self, operator_id: str, entity_id: str, job_type: str) -> ArtifactRecord | None:
    return self._rows.get((operator_id, entity_id, job_type))

  async def list_for_entity(self, operator_id: str, entity_id: str) -> list[ArtifactRecord]:
    records = [record for (owner, entity, _), record in self._rows.items() if owner == operator_id and entity == entity_id]
    return sorted(records, key=lambda record: record.job_type)

  async def delete(self, operator_id: str, entity_id: str, job_type: str) -> bool:
    return self._rows.pop((operator_id, entity_id, job_type), None) is not None

  async def delete_parent_report(self, operator_id: str, entity_id: str, report_id: str) -> bool:
    key = (operator_id, entity_id, "parent_report")
    existing = self._rows.get(key)
    if existing is None:
      return False
    reports = _reports_list(existing.payload)
    remaining = [entry for entry in reports if not (isinstance(entry, dict) and entry.get("id") == report_id)]
    if len(remaining) == len(reports):
      return False
    self._rows[key] = msgspec.structs.replace(existing, payload={**existing.payload, "reports_list": remaining})
    return True


def build_artifact_repository(settings: Settings) -> ArtifactRepository:
  """Pick the Postgres repository when a DSN is configured."""
  if settings.pg_dsn:
    return PostgresArtifactRepository()
  logger.info("INSIGHTS_PG_DSN not set; using in-process artifact store.")
  return InMemoryArtifactRepository()

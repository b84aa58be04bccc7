"""Credit ledger: subscription admission checks and atomic credit commits."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any, Literal, Protocol

from app.config import Settings
from app.core.database import get_session_factory
from app.schema.subscriptions import CreditUsageLog, Subscription
from sqlalchemy import Update, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

RejectionReason = Literal["subscription_expired", "insufficient_credits"]


class LedgerReadError(RuntimeError):
  """Raised when the ledger storage cannot be read."""


class CreditCommitError(RuntimeError):
  """Raised when the ledger storage fails while committing credits."""


@dataclass(frozen=True)
class SubscriptionSnapshot:
  """Read model of one operator's subscription."""

  operator_id: str
  tier: str
  max_credits: int
  used_credits: int
  valid_until: datetime.datetime | None

  @property
  def remaining_credits(self) -> int:
    return max(self.max_credits - self.used_credits, 0)

  def is_expired(self, now: datetime.datetime) -> bool:
    """Return True once the validity window has passed; no window means no expiry."""
    if self.valid_until is None:
      return False
    return now > self.valid_until


@dataclass(frozen=True)
class AdmissionResult:
  """Outcome of an admission check."""

  admitted: bool
  reason: RejectionReason | None = None
  snapshot: SubscriptionSnapshot | None = None

  @property
  def message(self) -> str:
    if self.admitted:
      return "Admitted"
    if self.snapshot is None:
      return "No active subscription found"
    if self.reason == "subscription_expired":
      return "Your subscription has expired"
    return f"Insufficient credits ({self.snapshot.remaining_credits} remaining)"


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def evaluate_admission(snapshot: SubscriptionSnapshot | None, required_credits: int, *, now: datetime.datetime) -> AdmissionResult:
  """Apply the admission rules to a subscription snapshot.

  Expiry is checked first so an expired subscription is rejected even with credits to spare.
  A missing subscription is treated as expired.
  """
  if required_credits <= 0:
    raise ValueError("required_credits must be positive.")
  if snapshot is None:
    return AdmissionResult(admitted=False, reason="subscription_expired", snapshot=None)
  if snapshot.is_expired(now):
    return AdmissionResult(admitted=False, reason="subscription_expired", snapshot=snapshot)
  if snapshot.used_credits + required_credits > snapshot.max_credits:
    return AdmissionResult(admitted=False, reason="insufficient_credits", snapshot=snapshot)
  return AdmissionResult(admitted=True, snapshot=snapshot)


class CreditLedger(Protocol):
  """Contract shared by the Postgres and in-process ledgers."""

  async def get_subscription(self, operator_id: str) -> SubscriptionSnapshot | None:
    """Return the operator's subscription read model."""

  async def check_admission(self, operator_id: str, required_credits: int) -> AdmissionResult:
    """Decide whether a job may start."""

  async def has_committed(self, operator_id: str, job_id: str) -> bool:
    """Return True when credits were already charged for the operator's job id."""

  async def commit(self, operator_id: str, credits: int, *, job_id: str, job_type: str) -> SubscriptionSnapshot | None:
    """Charge credits for a finished job; None means the conditional update did not apply."""


def build_commit_statement(operator_id: str, credits: int) -> Update:
  """Build the single conditional update that charges credits without overspending."""
  new_used = Subscription.used_credits + credits
  return (
    update(Subscription)
    .where(Subscription.operator_id == operator_id, new_used <= Subscription.max_credits)
    .values(used_credits=new_used, updated_at=_utc_now())
    .returning(Subscription.operator_id, Subscription.tier, Subscription.max_credits, Subscription.used_credits, Subscription.valid_until)
  )


def _snapshot_from_row(row: Any) -> SubscriptionSnapshot:
  return SubscriptionSnapshot(
    operator_id=str(row.operator_id), tier=str(row.tier), max_credits=int(row.max_credits), used_credits=int(row.used_credits), valid_until=row.valid_until
  )


class PostgresCreditLedger:
  """Ledger backed by the subscriptions and credit_usage_logs tables."""

  def __init__(self, *, session_factory: async_sessionmaker[AsyncSession] | None = None, clock: Callable[[], datetime.datetime] = _utc_now) -> None:
    self._session_factory = session_factory
    self._clock = clock

  def _sessions(self) -> async_sessionmaker[AsyncSession]:
    session_factory = self._session_factory or get_session_factory()
    if session_factory is None:
      raise RuntimeError("Database connection is not configured (INSIGHTS_PG_DSN is missing).")
    return session_factory

  async def get_subscription(self, operator_id: str) -> SubscriptionSnapshot | None:
    stmt = select(Subscription).where(Subscription.operator_id == operator_id)
    try:
      async with self._sessions()() as session:
        result = await session.execute(stmt)
        row = result.scalar_one_or_none()
    except SQLAlchemyError as exc:
      raise LedgerReadError(f"subscription lookup failed for operator {operator_id}") from exc
    if row is None:
      return None
    return _snapshot_from_row(row)

  async def check_admission(self, operator_id: str, required_credits: int) -> AdmissionResult:
    snapshot = await self.get_subscription(operator_id)
    return evaluate_admission(snapshot, required_credits, now=self._clock())

  async def has_committed(self, operator_id: str, job_id: str) -> bool:
    stmt = select(CreditUsageLog.id).where(CreditUsageLog.operator_id == operator_id, CreditUsageLog.job_id == job_id).limit(1)
    try:
      async with self._sessions()() as session:
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
    except SQLAlchemyError as exc:
      raise LedgerReadError(f"usage log lookup failed for job {job_id}") from exc

  async def commit(self, operator_id: str, credits: int, *, job_id: str, job_type: str) -> SubscriptionSnapshot | None:
    """Charge credits and append the usage log in one transaction.

    The WHERE clause carries the balance check, so concurrent commits for one operator
    can never push used_credits past max_credits. The unique (operator_id, job_id) on the usage log
    turns a retried commit for the same job into a rollback instead of a second charge.
    """
    if credits <= 0:
      raise ValueError("credits must be positive.")

    try:
      async with self._sessions()() as session:
        async with session.begin():
          result = await session.execute(build_commit_statement(operator_id, credits))
          row = result.one_or_none()
          if row is None:
            logger.warning("Credit commit did not apply operator_id=%s job_id=%s credits=%s", operator_id, job_id, credits)
            return None
          session.add(CreditUsageLog(operator_id=operator_id, job_id=job_id, job_type=job_type, credits=credits))
          # Flush inside the transaction so a duplicate job id rolls back the balance bump.
          await session.flush()
    except IntegrityError:
      logger.warning("Credits already committed for job_id=%s operator_id=%s", job_id, operator_id)
      return None
    except SQLAlchemyError as exc:
      raise CreditCommitError(f"credit commit failed for job {job_id}") from exc

    return _snapshot_from_row(row)


class InMemoryCreditLedger:
  """Process-local ledger used when Postgres is not configured.

  A per-operator lock serializes the check-and-bump in commit, giving the same
  guarantee as the conditional update in the Postgres ledger.
  """

  def __init__(self, *, clock: Callable[[], datetime.datetime] = _utc_now) -> None:
    self._clock = clock
    self._subscriptions: dict[str, SubscriptionSnapshot] = {}
    self._committed_jobs: set[tuple[str, str]] = set()
    self._locks: dict[str, asyncio.Lock] = {}

  def _lock_for(self, operator_id: str) -> asyncio.Lock:
    lock = self._locks.get(operator_id)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[operator_id] = lock
    return lock

  def seed(self, subscription: SubscriptionSnapshot) -> None:
    """Create or renew a subscription, as the billing collaborator would."""
    if subscription.used_credits > subscription.max_credits:
      raise ValueError("used_credits must not exceed max_credits.")
    self._subscriptions[subscription.operator_id] = subscription

  async def get_subscription(self, operator_id: str) -> SubscriptionSnapshot | None:
    return self._subscriptions.get(operator_id)

  async def check_admission(self, operator_id: str, required_credits: int) -> AdmissionResult:
    return evaluate_admission(self._subscriptions.get(operator_id), required_credits, now=self._clock())

  async def has_committed(self, operator_id: str, job_id: str) -> bool:
    return (operator_id, job_id) in self._committed_jobs

  async def commit(self, operator_id: str, credits: int, *, job_id: str, job_type: str) -> SubscriptionSnapshot | None:
    if credits <= 0:
      raise ValueError("credits must be positive.")
    async with self._lock_for(operator_id):
      if (operator_id, job_id) in self._committed_jobs:
        logger.warning("Credits already committed for job_id=%s operator_id=%s", job_id, operator_id)
        return None
      current = self._subscriptions.get(operator_id)
      if current is None or current.used_credits + credits > current.max_credits:
        logger.warning("Credit commit did not apply operator_id=%s job_id=%s credits=%s", operator_id, job_id, credits)
        return None
      updated = replace(current, used_credits=current.used_credits + credits)
      self._subscriptions[operator_id] = updated
      self._committed_jobs.add((operator_id, job_id))
      logger.debug("Committed %s credits for job_id=%s job_type=%s", credits, job_id, job_type)
      return updated


def build_credit_ledger(settings: Settings) -> CreditLedger:
  """Pick the Postgres ledger when a DSN is configured."""
  if settings.pg_dsn:
    return PostgresCreditLedger()
  logger.info("INSIGHTS_PG_DSN not set; using in-process credit ledger.")
  return InMemoryCreditLedger()

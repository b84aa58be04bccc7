"""Service singletons shared by the API routes.

Each builder is cached for the process and doubles as a FastAPI dependency,
so tests swap implementations through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from app.config import Settings, get_settings
from app.jobs.dispatch import WebhookDispatcher
from app.jobs.orchestrator import JobOrchestrator
from app.notifications.fanout import NotificationHub
from app.services.credit_ledger import CreditLedger, build_credit_ledger
from app.storage.artifacts_repo import ArtifactRepository, build_artifact_repository
from fastapi import Depends


@lru_cache(maxsize=1)
def get_credit_ledger() -> CreditLedger:
  return build_credit_ledger(get_settings())


@lru_cache(maxsize=1)
def get_artifact_repository() -> ArtifactRepository:
  return build_artifact_repository(get_settings())


@lru_cache(maxsize=1)
def get_notification_hub() -> NotificationHub:
  return NotificationHub(queue_size=get_settings().notification_queue_size)


@lru_cache(maxsize=1)
def get_dispatcher() -> WebhookDispatcher:
  return WebhookDispatcher(get_settings())


def get_orchestrator(
  settings: Settings = Depends(get_settings),  # noqa: B008
  ledger: CreditLedger = Depends(get_credit_ledger),  # noqa: B008
  dispatcher: WebhookDispatcher = Depends(get_dispatcher),  # noqa: B008
  store: ArtifactRepository = Depends(get_artifact_repository),  # noqa: B008
  hub: NotificationHub = Depends(get_notification_hub),  # noqa: B008
) -> JobOrchestrator:
  """Assemble the job pipeline from the shared services."""
  return JobOrchestrator(settings=settings, ledger=ledger, dispatcher=dispatcher, store=store, hub=hub)

"""Test configuration for importing the application package."""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

# Settings are read at import time; keep tests on the in-process ledger and store.
os.environ.setdefault("INSIGHTS_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.pop("INSIGHTS_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import dataclasses  # noqa: E402
import datetime  # noqa: E402
from collections.abc import Callable  # noqa: E402

import pytest  # noqa: E402

from app.config import Settings, get_settings  # noqa: E402
from app.services.credit_ledger import InMemoryCreditLedger, SubscriptionSnapshot  # noqa: E402

WEBHOOK_URL = "https://ai.example.test/webhook"


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return dataclasses.replace(get_settings(), webhook_urls={"default": WEBHOOK_URL}, dispatch_timeout_seconds=5.0)


def make_subscription(operator_id: str = "tutor-1", *, used: int = 0, max_credits: int = 500, valid_until: datetime.datetime | None = None, tier: str = "basic") -> SubscriptionSnapshot:
  if valid_until is None:
    valid_until = datetime.datetime.now(datetime.UTC) + datetime.timedelta(days=30)
  return SubscriptionSnapshot(operator_id=operator_id, tier=tier, max_credits=max_credits, used_credits=used, valid_until=valid_until)


@pytest.fixture
def subscription_factory() -> Callable[..., SubscriptionSnapshot]:
  return make_subscription


@pytest.fixture
def ledger() -> InMemoryCreditLedger:
  ledger = InMemoryCreditLedger()
  ledger.seed(make_subscription())
  return ledger

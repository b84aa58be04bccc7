"""HTTP-level tests for the artifact job, listing and subscription routes."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.deps import get_artifact_repository, get_credit_ledger, get_dispatcher, get_notification_hub
from app.config import Settings, get_settings
from app.core.security import get_current_operator_id
from app.jobs.dispatch import WebhookDispatcher
from app.main import app
from app.notifications.fanout import NotificationHub
from app.services.credit_ledger import InMemoryCreditLedger, LedgerReadError, SubscriptionSnapshot
from app.storage.artifacts_repo import InMemoryArtifactRepository

SubscriptionFactory = Callable[..., SubscriptionSnapshot]


@dataclass
class FakeWebhook:
  """Scripted AI service reply plus the bodies it received."""

  status_code: int = 200
  reply: Any = field(default_factory=lambda: {"output": '```json\n{"trend_icon": "positive"}\n```'})
  requests: list[httpx.Request] = field(default_factory=list)

  def __call__(self, request: httpx.Request) -> httpx.Response:
    self.requests.append(request)
    return httpx.Response(self.status_code, json=self.reply)


@dataclass
class Harness:
  client: TestClient
  ledger: InMemoryCreditLedger
  store: InMemoryArtifactRepository
  webhook: FakeWebhook
  caller: dict[str, str]


@pytest.fixture
def harness(settings: Settings, ledger: InMemoryCreditLedger) -> Iterator[Harness]:
  store = InMemoryArtifactRepository()
  hub = NotificationHub()
  webhook = FakeWebhook()
  dispatcher = WebhookDispatcher(settings, transport=httpx.MockTransport(webhook))
  caller = {"uid": "tutor-1"}

  app.dependency_overrides[get_current_operator_id] = lambda: caller["uid"]
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[get_credit_ledger] = lambda: ledger
  app.dependency_overrides[get_artifact_repository] = lambda: store
  app.dependency_overrides[get_notification_hub] = lambda: hub
  app.dependency_overrides[get_dispatcher] = lambda: dispatcher
  try:
    yield Harness(client=TestClient(app), ledger=ledger, store=store, webhook=webhook, caller=caller)
  finally:
    app.dependency_overrides.clear()


def test_health() -> None:
  response = TestClient(app).get("/health")
  assert response.status_code == 200
  assert response.json()["status"] == "ok"


def test_job_succeeds_and_charges_credits(harness: Harness) -> None:
  response = harness.client.post("/v1/artifacts/executive_summary", json={"operatorId": "tutor-1", "entityId": "student-1"})

  assert response.status_code == 200
  body = response.json()
  assert body["ok"] is True
  assert body["data"]["jobType"] == "executive_summary"
  assert body["data"]["entityId"] == "student-1"
  assert body["data"]["payload"]["trend_icon"] == "positive"
  assert "x-request-id" in response.headers

  subscription = harness.client.get("/v1/subscription").json()
  assert subscription["usedCredits"] == 3
  assert subscription["remainingCredits"] == 497


def test_insufficient_credits_returns_subscription_error(harness: Harness, subscription_factory: SubscriptionFactory) -> None:
  harness.ledger.seed(subscription_factory(used=495, max_credits=500))

  response = harness.client.post("/v1/artifacts/report", json={"operatorId": "tutor-1", "entityId": "student-1", "imageUrls": ["https://img/1.png"], "reportTitle": "Quiz"})

  assert response.status_code == 200
  assert response.json() == {"ok": False, "errorType": "subscription_error", "message": "Insufficient credits (5 remaining)", "requiredCredits": 10}
  assert harness.webhook.requests == []
  assert harness.client.get("/v1/subscription").json()["usedCredits"] == 495


def test_acting_for_another_operator_is_forbidden(harness: Harness) -> None:
  response = harness.client.post("/v1/artifacts/executive_summary", json={"operatorId": "tutor-2", "entityId": "student-1"})

  assert response.status_code == 403
  assert response.json()["errorType"] == "general_error"
  assert harness.webhook.requests == []


def test_unknown_job_type_is_not_found(harness: Harness) -> None:
  response = harness.client.post("/v1/artifacts/homework", json={"operatorId": "tutor-1", "entityId": "student-1"})
  assert response.status_code == 404


def test_non_json_body_is_rejected(harness: Harness) -> None:
  response = harness.client.post("/v1/artifacts/executive_summary", content=b"not json", headers={"content-type": "application/json"})
  assert response.status_code == 400


def test_invalid_fields_are_rejected(harness: Harness) -> None:
  missing_notes = harness.client.post("/v1/artifacts/notes_summary", json={"operatorId": "tutor-1", "entityId": "student-1", "notes": []})
  unknown_field = harness.client.post("/v1/artifacts/executive_summary", json={"operatorId": "tutor-1", "entityId": "student-1", "extra": True})

  assert missing_notes.status_code == 422
  assert unknown_field.status_code == 422
  assert harness.webhook.requests == []


def test_ai_service_failure_returns_general_error_without_charge(harness: Harness) -> None:
  harness.webhook.status_code = 500
  harness.webhook.reply = {"error": "overloaded"}

  response = harness.client.post("/v1/artifacts/executive_summary", json={"operatorId": "tutor-1", "entityId": "student-1"})

  assert response.status_code == 502
  assert response.json()["errorType"] == "general_error"
  assert harness.client.get("/v1/subscription").json()["usedCredits"] == 0


def test_list_get_and_delete_artifacts(harness: Harness) -> None:
  created = harness.client.post("/v1/artifacts/executive_summary", json={"operatorId": "tutor-1", "entityId": "student-1"}).json()["data"]

  listed = harness.client.get("/v1/students/student-1/artifacts").json()["items"]
  assert [item["id"] for item in listed] == [created["id"]]

  fetched = harness.client.get(f"/v1/artifacts/{created['id']}")
  assert fetched.status_code == 200
  assert fetched.json()["payload"] == created["payload"]

  harness.caller["uid"] = "tutor-2"
  assert harness.client.get(f"/v1/artifacts/{created['id']}").status_code == 404
  assert harness.client.delete("/v1/students/student-1/artifacts/executive_summary").status_code == 404

  harness.caller["uid"] = "tutor-1"
  assert harness.client.delete("/v1/students/student-1/artifacts/executive_summary").status_code == 204
  assert harness.client.get("/v1/students/student-1/artifacts").json()["items"] == []


def test_parent_reports_append_and_delete_individually(harness: Harness) -> None:
  harness.webhook.reply = {"reportContent": "A strong term overall."}
  payload = {"operatorId": "tutor-1", "entityId": "student-1", "reportTitle": "Term report"}

  harness.client.post("/v1/artifacts/parent_report", json=payload)
  second = harness.client.post("/v1/artifacts/parent_report", json=payload).json()["data"]

  reports = second["payload"]["reports_list"]
  assert len(reports) == 2
  sent = harness.webhook.requests[-1].read()
  assert b"profileData" in sent

  response = harness.client.delete(f"/v1/students/student-1/parent-reports/{reports[0]['id']}")
  assert response.status_code == 204
  assert harness.client.delete(f"/v1/students/student-1/parent-reports/{reports[0]['id']}").status_code == 404

  remaining = harness.client.get("/v1/students/student-1/artifacts").json()["items"][0]["payload"]["reports_list"]
  assert [entry["id"] for entry in remaining] == [reports[1]["id"]]


def test_subscription_missing_returns_not_found(harness: Harness) -> None:
  harness.caller["uid"] = "tutor-without-plan"
  assert harness.client.get("/v1/subscription").status_code == 404


def test_requests_without_token_are_rejected() -> None:
  response = TestClient(app).get("/v1/subscription")
  assert response.status_code in {401, 403}


def test_reused_job_id_is_not_run_again(harness: Harness) -> None:
  payload = {"operatorId": "tutor-1", "entityId": "student-1", "jobId": "fixed-id"}

  first = harness.client.post("/v1/artifacts/executive_summary", json=payload)
  second = harness.client.post("/v1/artifacts/executive_summary", json=payload)

  assert first.json()["ok"] is True
  assert second.status_code == 409
  assert second.json() == {"ok": False, "errorType": "general_error", "message": "This job has already been completed"}
  assert len(harness.webhook.requests) == 1
  assert harness.client.get("/v1/subscription").json()["usedCredits"] == 3


def test_subscription_read_failure_is_service_unavailable(harness: Harness) -> None:
  broken = MagicMock()
  broken.get_subscription = AsyncMock(side_effect=LedgerReadError("connection refused"))
  app.dependency_overrides[get_credit_ledger] = lambda: broken

  response = harness.client.get("/v1/subscription")

  assert response.status_code == 503

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_credit_ledger
from app.api.models import SubscriptionResponse
from app.core.security import get_current_operator_id
from app.services.credit_ledger import CreditLedger, LedgerReadError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=SubscriptionResponse, response_model_by_alias=True)
async def get_subscription(
  operator_id: str = Depends(get_current_operator_id),  # noqa: B008
  ledger: CreditLedger = Depends(get_credit_ledger),  # noqa: B008
) -> SubscriptionResponse:
  """Return the caller's credit balance and validity window."""
  try:
    snapshot = await ledger.get_subscription(operator_id)
  except LedgerReadError as exc:
    logger.error("Subscription lookup failed operator_id=%s", operator_id, exc_info=True)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Credit balance is temporarily unavailable") from exc
  if snapshot is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No subscription found")
  valid_until = snapshot.valid_until.isoformat() if snapshot.valid_until is not None else None
  return SubscriptionResponse(
    operator_id=snapshot.operator_id, tier=snapshot.tier, max_credits=snapshot.max_credits, used_credits=snapshot.used_credits, remaining_credits=snapshot.remaining_credits, valid_until=valid_until
  )

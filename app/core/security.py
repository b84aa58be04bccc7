from __future__ import annotations

from typing import Annotated

from app.core.firebase import verify_id_token
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

security_scheme = HTTPBearer()


async def get_current_operator_id(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)]) -> str:
  """Verify the Firebase ID token and return the caller's uid as the operator id."""
  # Token verification is blocking, so keep it off the event loop.
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)

  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")

  return str(firebase_uid)

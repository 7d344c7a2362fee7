from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from chronicle.core.firebase import verify_id_token

security_scheme = HTTPBearer()


@dataclass(frozen=True)
class Owner:
  """Authenticated caller. `owner_id` scopes every book and job operation."""

  owner_id: str
  email: str | None = None


async def get_current_owner(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)]) -> Owner:
  """Verify the Firebase ID token and expose the uid and email claims."""
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)

  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")

  email = decoded_claims.get("email")
  return Owner(owner_id=str(firebase_uid), email=str(email) if email else None)

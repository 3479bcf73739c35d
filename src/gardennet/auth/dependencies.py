"""FastAPI dependencies that build the acting-classroom context."""

from __future__ import annotations

import hmac
from dataclasses import dataclass

import jwt
from fastapi import Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gardennet.auth.session import verify_session_token
from gardennet.config import get_settings

_bearer = HTTPBearer()


@dataclass(frozen=True)
class ActorContext:
    """Who is acting. Passed explicitly into every network service call."""

    teacher_id: str
    classroom_id: str


async def get_actor(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> ActorContext:
    """
    Verify the session token and return the acting classroom.

    The classroom id is trusted as issued; role checks (e.g. "only the target
    may accept") happen in the services against stored fields.
    """
    try:
        payload = verify_session_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    return ActorContext(teacher_id=str(payload["sub"]), classroom_id=str(payload["classroom_id"]))


async def require_operator(
    x_operator_key: str | None = Header(None, alias="X-Operator-Key"),
) -> None:
    """Guard platform-operator endpoints with the shared operator key."""
    expected = get_settings().operator_api_key
    if not expected:
        raise HTTPException(status_code=403, detail="Operator access is disabled")
    if x_operator_key is None or not hmac.compare_digest(x_operator_key, expected):
        raise HTTPException(status_code=403, detail="Invalid operator key")

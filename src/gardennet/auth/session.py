"""
Session token verification.

Tokens are issued by the platform's auth service, not by this API. They carry
the signed-in teacher (`sub`) and the classroom they are acting for
(`classroom_id`). This module only verifies them; `create_session_token`
exists for local tooling and tests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from gardennet.config import get_settings


def create_session_token(
    teacher_id: str,
    classroom_id: str,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    Create a session token in the auth service's format.

    Args:
        teacher_id: The signed-in teacher.
        classroom_id: The classroom the teacher is acting for.
        expires_in: Token lifetime.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": teacher_id,
        "classroom_id": classroom_id,
        "iat": now,
        "exp": now + expires_in,
    }
    if settings.session_issuer:
        payload["iss"] = settings.session_issuer
    return jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)


def verify_session_token(token: str) -> dict[str, Any]:
    """
    Verify and decode a session token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or lacks a classroom.
    """
    settings = get_settings()
    options: dict[str, Any] = {"require": ["exp", "sub"]}
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.session_algorithm],
            issuer=settings.session_issuer,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        msg = "Session has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("classroom_id"):
        msg = "Session is not bound to a classroom"
        raise jwt.InvalidTokenError(msg)

    return payload

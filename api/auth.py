"""Session gate for the backup API."""
from __future__ import annotations

import secrets
from typing import Callable, Optional

from fastapi import Cookie, Header, HTTPException, status

SESSION_COOKIE = "baby_session"

SessionValidator = Callable[[str], bool]


class SessionAuth:
    """Dependency accepting requests whose session id the validator approves.

    The session id is read from the ``baby_session`` cookie, falling back to
    the ``X-Session-Id`` header for non-browser clients.
    """

    def __init__(self, validator: SessionValidator) -> None:
        self._validator = validator

    def __call__(
        self,
        baby_session: Optional[str] = Cookie(None),
        x_session_id: Optional[str] = Header(None),
    ) -> str:
        session_id = (baby_session or x_session_id or "").strip()
        if not session_id or not self._validator(session_id):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing session.",
            )
        return session_id


def static_token_validator(expected: Optional[str]) -> SessionValidator:
    """Validator accepting a single configured token; rejects everything when unset."""

    token = (expected or "").strip()

    def _validate(session_id: str) -> bool:
        if not token:
            return False
        return secrets.compare_digest(session_id.encode("utf-8"), token.encode("utf-8"))

    return _validate


__all__ = ["SESSION_COOKIE", "SessionAuth", "SessionValidator", "static_token_validator"]

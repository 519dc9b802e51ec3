"""
verify.py
---------
Purpose:
    Admin authentication for the read-only tester/build/device endpoints.

Notes:
    - HTTP Basic against ADMIN_USER / ADMIN_PASS. This is a placeholder
      credential, not a security boundary: one shared secret, sent on every
      request, with no rotation or lockout.
    - The check is behind `CredentialChecker` so a real scheme (tokens,
      per-operator accounts) can replace it by overriding
      `get_credential_checker` without touching route wiring.
"""

import secrets
from typing import Protocol

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ADMIN_REALM = "Admin"

_security = HTTPBasic(realm=ADMIN_REALM, auto_error=False)


class CredentialChecker(Protocol):
    def check(self, username: str, password: str) -> bool: ...


class StaticCredentialChecker:
    """Compares against a single configured username/password pair."""

    def __init__(self, username: str, password: str):
        self._username = username.encode("utf-8")
        self._password = password.encode("utf-8")

    def check(self, username: str, password: str) -> bool:
        user_ok = secrets.compare_digest(username.encode("utf-8"), self._username)
        pass_ok = secrets.compare_digest(password.encode("utf-8"), self._password)
        return user_ok and pass_ok


def get_credential_checker() -> CredentialChecker:
    return StaticCredentialChecker(settings.ADMIN_USER, settings.ADMIN_PASS)


def admin_dependency(
    credentials: HTTPBasicCredentials | None = Depends(_security),
    checker: CredentialChecker = Depends(get_credential_checker),
) -> str:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Authentication required", "code": "AUTH_REQUIRED"},
            headers={"WWW-Authenticate": f'Basic realm="{ADMIN_REALM}"'},
        )

    if not checker.check(credentials.username, credentials.password):
        logger.warning("Admin authentication failed", username=credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "Invalid credentials", "code": "INVALID_CREDENTIALS"},
            headers={"WWW-Authenticate": f'Basic realm="{ADMIN_REALM}"'},
        )

    return credentials.username

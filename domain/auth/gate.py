"""
Auth gate - decides whether a caller may drive a payment update cycle.

Pure check, no side effects. Rejections are returned as a decision, the
API layer turns them into an authentication error.
"""
from __future__ import annotations

import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .credentials import CredentialStore


class AuthMode(str, Enum):
    """How strictly the presented token is checked."""
    STRICT = "strict"                 # credential must exist and match
    PRESENCE_ONLY = "presence_only"   # credential must exist, token is not compared


class DenyReason(str, Enum):
    MISSING_CREDENTIAL = "MISSING_CREDENTIAL"
    UNAUTHORIZED_REQUEST = "UNAUTHORIZED_REQUEST"


@dataclass(frozen=True)
class AuthDecision:
    allowed: bool
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls) -> "AuthDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenyReason) -> "AuthDecision":
        return cls(allowed=False, reason=reason)


_BEARER_PREFIX = "bearer "


def _strip_scheme(token: str) -> str:
    if token[: len(_BEARER_PREFIX)].lower() == _BEARER_PREFIX:
        return token[len(_BEARER_PREFIX):].strip()
    return token


def tokens_match(stored: str, presented: Optional[str]) -> bool:
    """Constant-time comparison of the stored credential and the presented token.

    Accepts the raw credential or an `Authorization: Bearer <credential>` value.
    """
    if presented is None:
        return False
    return hmac.compare_digest(
        stored.encode("utf-8"),
        _strip_scheme(presented.strip()).encode("utf-8"),
    )


class AuthGate:
    def __init__(self, store: CredentialStore, mode: AuthMode = AuthMode.STRICT) -> None:
        self.store = store
        self.mode = AuthMode(mode)

    @property
    def enforces_token(self) -> bool:
        return self.mode is AuthMode.STRICT

    def authorize(self, project_key: Optional[str], presented_token: Optional[str]) -> AuthDecision:
        stored = self.store.get(project_key)
        if stored is None:
            return AuthDecision.deny(DenyReason.MISSING_CREDENTIAL)
        if self.enforces_token and not tokens_match(stored, presented_token):
            return AuthDecision.deny(DenyReason.UNAUTHORIZED_REQUEST)
        return AuthDecision.allow()

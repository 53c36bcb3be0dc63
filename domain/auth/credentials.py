"""
Credential store - project key to shared secret.

Built once at startup from configuration and read-only afterwards, so
concurrent reads need no locking.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple


class CredentialStore:
    """Immutable mapping of tenant (project key) to its inbound credential."""

    def __init__(self, credentials: Mapping[str, str] | None = None) -> None:
        self._credentials: Mapping[str, str] = MappingProxyType(dict(credentials or {}))

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Optional[str]]]) -> "CredentialStore":
        """Build from (project_key, credential) pairs.

        A pair without a credential leaves the tenant unconfigured. A project
        key seen twice is a configuration error: at most one credential per
        tenant.
        """
        seen: set[str] = set()
        credentials: dict[str, str] = {}
        for project_key, credential in pairs:
            if project_key in seen:
                raise ValueError(f"Duplicate credential configuration for project key '{project_key}'")
            seen.add(project_key)
            if credential:
                credentials[project_key] = credential
        return cls(credentials)

    def get(self, project_key: Optional[str]) -> Optional[str]:
        if not project_key:
            return None
        return self._credentials.get(project_key)

    def project_keys(self) -> list[str]:
        return list(self._credentials)

    def __contains__(self, project_key: object) -> bool:
        return project_key in self._credentials

    def __len__(self) -> int:
        return len(self._credentials)

"""Per-project authentication exports."""
from .credentials import CredentialStore
from .gate import AuthDecision, AuthGate, AuthMode, DenyReason

__all__ = ["CredentialStore", "AuthDecision", "AuthGate", "AuthMode", "DenyReason"]

"""
Local credential checks for email/password sign-in.

Accounts are injected (from configuration by default); there is no user
registration and no password storage beyond what the operator configures.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from ..config import Settings


def normalize_email(email: str) -> str:
    return email.strip().lower()


def subject_id_for(email: str) -> str:
    """Stable opaque subject id derived from a normalized email."""
    return hashlib.md5(normalize_email(email).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class LocalAccount:
    subject_id: str
    email: str


class CredentialStore(Protocol):
    def authenticate(self, email: str, password: str) -> Optional[LocalAccount]:
        ...


class StaticCredentialStore:
    """
    Credential store over a fixed email -> password mapping.

    Passwords are compared in constant time; unknown emails are compared
    against a dummy value so both failure paths cost the same.
    """

    def __init__(self, accounts: Optional[Dict[str, str]] = None):
        self._accounts = {
            normalize_email(email): password
            for email, password in (accounts or {}).items()
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "StaticCredentialStore":
        accounts = {}
        if settings.LOCAL_ADMIN_EMAIL and settings.LOCAL_ADMIN_PASSWORD:
            accounts[settings.LOCAL_ADMIN_EMAIL] = settings.LOCAL_ADMIN_PASSWORD
        return cls(accounts)

    def authenticate(self, email: str, password: str) -> Optional[LocalAccount]:
        normalized = normalize_email(email)
        expected = self._accounts.get(normalized)

        candidate = password.encode("utf-8")
        if expected is None:
            secrets.compare_digest(candidate, candidate)
            return None
        if not secrets.compare_digest(candidate, expected.encode("utf-8")):
            return None

        return LocalAccount(subject_id=subject_id_for(normalized), email=normalized)

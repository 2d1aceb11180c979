"""
Session Facade
==============

The single call surface the rest of the application uses for authentication.
Whether the session came from a local sign-in, an OIDC identity or a legacy
mock token, callers only ever see a `SessionUser`.
"""

import logging
import time
from typing import Optional

from ..config import Settings
from ..errors import MockAuthDisabled
from ..models import OIDCUserInfo, SessionIdentity, SessionUser
from .credentials import CredentialStore, normalize_email, subject_id_for
from .session import CookieSessionStore
from .tokens import build_session_claims, derive_pseudonymous_id, issue_mock_token

logger = logging.getLogger(__name__)


class SessionFacade:
    """
    Sign in, sign out and "who is the current user".

    Args:
        store: Cookie session store of the current request
        credentials: Store used to check local email/password sign-ins
        settings: Application settings
    """

    def __init__(self, store: CookieSessionStore, credentials: CredentialStore, settings: Settings):
        self.store = store
        self.credentials = credentials
        self.settings = settings

    def sign_in(self, email: str, password: str) -> Optional[SessionUser]:
        """Check local credentials and start a session; None when they are wrong."""
        account = self.credentials.authenticate(email, password)
        if account is None:
            logger.info("Local sign-in rejected")
            return None

        return self._start_session(
            SessionIdentity(subject_id=account.subject_id, original_identity=account.email)
        )

    def sign_in_with_identity(self, user_info: OIDCUserInfo) -> Optional[SessionUser]:
        """Start a session for an identity resolved by the OIDC provider."""
        identity = user_info.email or user_info.preferred_username
        if not identity:
            logger.error("OIDC identity has neither email nor principal name")
            return None

        return self._start_session(
            SessionIdentity(subject_id=user_info.sub, original_identity=normalize_email(identity))
        )

    def sign_in_mock(self, email: str) -> SessionUser:
        """
        Start an unsigned development session.

        Raises:
            MockAuthDisabled: If mock tokens are not enabled
        """
        if not self.settings.mock_tokens_enabled:
            raise MockAuthDisabled("Mock sign-in is disabled")

        identity = normalize_email(email)
        issued_at_ms = int(time.time() * 1000)
        claims = build_session_claims(
            SessionIdentity(subject_id=subject_id_for(identity), original_identity=identity),
            self.settings,
            now=issued_at_ms // 1000,
        )
        self.store.store_token(issue_mock_token(identity, now_ms=issued_at_ms), claims.expires_at)

        logger.warning("Started unsigned mock session")
        return SessionUser.from_claims(claims)

    def sign_out(self) -> None:
        self.store.destroy_session()

    def current_user(self) -> Optional[SessionUser]:
        claims = self.store.get_session()
        if claims is None:
            return None
        return SessionUser.from_claims(claims)

    def _start_session(self, identity: SessionIdentity) -> SessionUser:
        self.store.create_session(identity)
        return SessionUser(
            subject_id=identity.subject_id,
            pseudonymous_identifier=derive_pseudonymous_id(identity.original_identity),
            original_identity=identity.original_identity,
            kind=identity.kind,
        )

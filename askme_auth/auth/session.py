"""
Cookie Session Store
====================

Binds the session token to its only persistence: a single HTTP cookie.

There is no server-side session table. Reading the session re-verifies the
token on every request; any verification failure deletes the cookie and is
reported as "no session".
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request, Response

from ..config import Settings
from ..errors import TokenVerificationError
from ..models import SessionClaims, SessionIdentity
from .tokens import build_session_claims, encode_session_token, verify_token

logger = logging.getLogger(__name__)


class CookieSessionStore:
    """
    Session operations for one request/response pair.

    Args:
        request: Incoming request the session cookie is read from
        response: Outgoing response cookies are written to
        settings: Application settings (cookie name, lifetime, secret)
    """

    def __init__(self, request: Request, response: Response, settings: Settings):
        self.request = request
        self.response = response
        self.settings = settings

    @property
    def cookie_name(self) -> str:
        return self.settings.SESSION_COOKIE_NAME

    def create_session(self, identity: SessionIdentity) -> str:
        """
        Issue a signed token for `identity` and store it in the cookie.

        Returns:
            The token, for immediate in-process use
        """
        claims = build_session_claims(identity, self.settings)
        token = encode_session_token(claims, self.settings.session_signing_secret)
        self.store_token(token, claims.expires_at)

        logger.info("Created session", extra={"user_id": claims.subject_id})
        return token

    def store_token(self, token: str, expires_at: int) -> None:
        """Write `token` to the session cookie, expiring at `expires_at` (unix seconds)."""
        max_age = max(0, expires_at - int(datetime.now(timezone.utc).timestamp()))
        self.response.set_cookie(
            key=self.cookie_name,
            value=token,
            max_age=max_age,
            expires=datetime.fromtimestamp(expires_at, tz=timezone.utc),
            path="/",
            secure=self.settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )

    def get_session(self) -> Optional[SessionClaims]:
        """
        Return the verified claims of the current request, or None.

        Only token verification failures are handled here; any other
        exception (request cancellation, framework control flow) propagates
        unchanged and leaves the cookie untouched.
        """
        token = self.request.cookies.get(self.cookie_name)
        if not token:
            return None

        try:
            return verify_token(token, self.settings)
        except TokenVerificationError as e:
            logger.warning(f"Discarding invalid session cookie: {type(e).__name__}")
            self.destroy_session()
            return None

    def destroy_session(self) -> None:
        """Delete the session cookie. Safe to call when no cookie exists."""
        self.response.delete_cookie(
            key=self.cookie_name,
            path="/",
            secure=self.settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )

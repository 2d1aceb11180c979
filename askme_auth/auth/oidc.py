"""
OIDC authorization code flow against Microsoft Entra ID.

This module handles:
- Building the authorization URL with CSRF state and replay-resistant nonce
- Exchanging the authorization code for provider tokens
- Fetching the signed-in user's profile
- Surfacing provider errors from the redirect callback

The auth state is held by the browser between the authorization redirect and
the callback, so the server keeps nothing. When the browser lost it, a
fallback state is substituted and the degraded trust level is logged.
"""

import asyncio
import logging
import secrets
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlencode

import httpx
import jwt
from pydantic import ValidationError

from ..config import Settings
from ..errors import (
    ConfigurationError,
    CsrfStateMismatch,
    MissingClientSecret,
    OIDCFlowError,
    ProviderHttpError,
    ProviderTimeout,
)
from ..models import OIDCAuthState, OIDCError, OIDCUserInfo, ProviderTokens

logger = logging.getLogger(__name__)


FALLBACK_NONCE = "fallback-nonce"


class OIDCPhase(str, Enum):
    IDLE = "idle"
    AUTHORIZATION_REQUESTED = "authorization_requested"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_RESOLVED = "identity_resolved"
    FAILED = "failed"


# =============================================================================
# Helpers
# =============================================================================

def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_nonce() -> str:
    return secrets.token_urlsafe(32)


def parse_provider_error(query_params: Mapping[str, str]) -> Optional[OIDCError]:
    """
    Extract an error reported by the provider on the redirect callback.

    Must be checked before any code/state processing.
    """
    error = query_params.get("error")
    if not error:
        return None

    return OIDCError(
        error=error,
        error_description=query_params.get("error_description") or None,
        error_uri=query_params.get("error_uri") or None,
    )


def map_user_info(profile: Dict[str, Any]) -> OIDCUserInfo:
    """
    Map a Microsoft Graph profile onto standard OIDC claim names.

    Standard claim names are used as a fallback so plain OIDC userinfo
    endpoints work too.

    Raises:
        OIDCFlowError: If the profile carries no subject identifier or a
                       field of the wrong type
    """
    subject = profile.get("id") or profile.get("sub")
    if not subject:
        raise OIDCFlowError("Profile response has no subject identifier")

    principal_name = profile.get("userPrincipalName") or profile.get("preferred_username")
    try:
        return OIDCUserInfo(
            sub=str(subject),
            name=profile.get("displayName") or profile.get("name"),
            email=profile.get("mail") or profile.get("email") or principal_name,
            given_name=profile.get("givenName") or profile.get("given_name"),
            family_name=profile.get("surname") or profile.get("family_name"),
            preferred_username=principal_name,
            locale=profile.get("preferredLanguage") or profile.get("locale"),
        )
    except ValidationError as e:
        raise OIDCFlowError(f"Profile response is not usable: {e}") from e


# =============================================================================
# Flow Controller
# =============================================================================

class OIDCFlowController:
    """
    Drives one authorization attempt through its phases.

    idle -> authorization_requested -> code_received -> token_exchanged
    -> identity_resolved; failed is reachable from every phase.

    Args:
        settings: Application settings (client, endpoints, timeout)
        http_client: Shared client for provider calls; a short-lived client
                     is opened per call when omitted
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http_client = http_client
        self.phase = OIDCPhase.IDLE
        self.auth_state: Optional[OIDCAuthState] = None

    @property
    def endpoints(self) -> Dict[str, str]:
        return self.settings.oidc_endpoints

    # -------------------------------------------------------------------------
    # Authorization
    # -------------------------------------------------------------------------

    def build_authorization_url(self) -> Tuple[str, OIDCAuthState]:
        """
        Build the provider authorization URL for a new attempt.

        Returns:
            The URL to redirect the browser to and the auth state the
            client must keep until the callback

        Raises:
            ConfigurationError: If no client id is configured
        """
        if not self.settings.oidc_configured:
            raise ConfigurationError("OIDC_CLIENT_ID is not configured")

        auth_state = OIDCAuthState(
            state=generate_state(),
            nonce=generate_nonce(),
            redirect_uri=self.settings.OIDC_CALLBACK_URL,
        )

        params = {
            "client_id": self.settings.OIDC_CLIENT_ID,
            "response_type": "code",
            "scope": self.settings.OIDC_SCOPE,
            "redirect_uri": auth_state.redirect_uri,
            "response_mode": self.settings.OIDC_RESPONSE_MODE,
            "state": auth_state.state,
            "nonce": auth_state.nonce,
            "prompt": "select_account",
        }

        self.auth_state = auth_state
        self.phase = OIDCPhase.AUTHORIZATION_REQUESTED
        return f"{self.endpoints['authorization']}?{urlencode(params)}", auth_state

    def fallback_state(self, returned_state: str) -> OIDCAuthState:
        """Deterministic stand-in for an auth state the client could not keep."""
        return OIDCAuthState(
            state=returned_state,
            nonce=FALLBACK_NONCE,
            redirect_uri=self.settings.OIDC_CALLBACK_URL,
        )

    def _resolve_auth_state(
        self,
        returned_state: str,
        stored_state: Optional[OIDCAuthState],
    ) -> OIDCAuthState:
        if stored_state is None:
            if self.settings.OIDC_STRICT_STATE:
                raise CsrfStateMismatch("No stored auth state for this callback")
            logger.warning(
                "No stored auth state; using fallback state, CSRF protection is degraded"
            )
            return self.fallback_state(returned_state)

        if not secrets.compare_digest(returned_state.encode(), stored_state.state.encode()):
            if self.settings.OIDC_STRICT_STATE:
                raise CsrfStateMismatch("Returned state does not match stored state")
            logger.warning(
                "State parameter mismatch, proceeding with token exchange",
                extra={"error_type": CsrfStateMismatch.__name__},
            )

        return stored_state

    # -------------------------------------------------------------------------
    # Token Exchange
    # -------------------------------------------------------------------------

    async def exchange_code_for_tokens(
        self,
        code: str,
        returned_state: str,
        stored_state: Optional[OIDCAuthState],
    ) -> Optional[ProviderTokens]:
        """
        Exchange an authorization code for provider tokens.

        A state mismatch is logged and tolerated unless OIDC_STRICT_STATE is
        enabled.

        Returns:
            Provider tokens, or None on any failure (details are logged)
        """
        self.phase = OIDCPhase.CODE_RECEIVED

        try:
            self.auth_state = self._resolve_auth_state(returned_state, stored_state)
            tokens = await self._request_tokens(code, self.auth_state)
        except OIDCFlowError as e:
            self._fail("Token exchange failed", e)
            return None

        self.phase = OIDCPhase.TOKEN_EXCHANGED
        logger.info("Token exchange successful")
        return tokens

    async def _request_tokens(self, code: str, auth_state: OIDCAuthState) -> ProviderTokens:
        client_secret = self.settings.OIDC_CLIENT_SECRET
        if not client_secret:
            raise MissingClientSecret("OIDC_CLIENT_SECRET is not configured")

        payload = {
            "client_id": self.settings.OIDC_CLIENT_ID or "",
            "client_secret": client_secret,
            "scope": self.settings.OIDC_SCOPE,
            "code": code,
            "redirect_uri": auth_state.redirect_uri,
            "grant_type": "authorization_code",
        }

        logger.debug(
            "Requesting tokens",
            extra={"endpoint": self.endpoints["token"], "redirect_uri": auth_state.redirect_uri},
        )
        response = await self._send(
            "POST",
            self.endpoints["token"],
            data=payload,
            headers={"Accept": "application/json"},
        )

        if not response.is_success:
            raise ProviderHttpError("token", response.status_code, response.text)

        try:
            return ProviderTokens.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise OIDCFlowError(f"Token response is not usable: {e}") from e

    # -------------------------------------------------------------------------
    # User Info
    # -------------------------------------------------------------------------

    async def get_user_info(self, access_token: str) -> Optional[OIDCUserInfo]:
        """
        Fetch the profile of the identity behind `access_token`.

        Returns:
            Normalized user info, or None on any failure (details are logged)
        """
        try:
            response = await self._send(
                "GET",
                self.endpoints["userinfo"],
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
            if not response.is_success:
                raise ProviderHttpError("userinfo", response.status_code, response.text)

            try:
                profile = response.json()
            except ValueError as e:
                raise OIDCFlowError(f"Profile response is not JSON: {e}") from e
            if not isinstance(profile, dict):
                raise OIDCFlowError("Profile response is not a JSON object")

            user_info = map_user_info(profile)
        except OIDCFlowError as e:
            self._fail("Failed to fetch user info", e)
            return None

        self.phase = OIDCPhase.IDENTITY_RESOLVED
        return user_info

    # -------------------------------------------------------------------------
    # Full Callback
    # -------------------------------------------------------------------------

    async def complete_login(
        self,
        code: str,
        returned_state: str,
        stored_state: Optional[OIDCAuthState],
    ) -> Optional[OIDCUserInfo]:
        """Run code exchange, nonce check and profile fetch for a callback."""
        tokens = await self.exchange_code_for_tokens(code, returned_state, stored_state)
        if tokens is None:
            return None

        if tokens.id_token and not self._nonce_matches(tokens.id_token):
            return None

        return await self.get_user_info(tokens.access_token)

    def _nonce_matches(self, id_token: str) -> bool:
        expected = self.auth_state.nonce if self.auth_state else FALLBACK_NONCE
        if expected == FALLBACK_NONCE:
            return True

        claims = decode_id_token(id_token)
        if claims is not None and claims.get("nonce") == expected:
            return True

        if self.settings.OIDC_STRICT_STATE:
            self._fail("ID token rejected", CsrfStateMismatch("ID token nonce does not match"))
            return False

        logger.warning("ID token nonce does not match the stored nonce")
        return True

    # -------------------------------------------------------------------------
    # Logout
    # -------------------------------------------------------------------------

    def build_logout_url(self, post_logout_redirect_uri: Optional[str] = None) -> str:
        params = {
            "post_logout_redirect_uri": post_logout_redirect_uri or self.settings.OIDC_CALLBACK_URL,
        }
        return f"{self.endpoints['logout']}?{urlencode(params)}"

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        ceiling = self.settings.OIDC_HTTP_TIMEOUT_SECONDS
        timeout = httpx.Timeout(ceiling)

        try:
            if self.http_client is not None:
                return await asyncio.wait_for(
                    self.http_client.request(method, url, timeout=timeout, **kwargs),
                    timeout=ceiling,
                )
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await asyncio.wait_for(
                    client.request(method, url, **kwargs),
                    timeout=ceiling,
                )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise ProviderTimeout(f"{url} did not answer within {ceiling}s") from e
        except httpx.RequestError as e:
            raise OIDCFlowError(f"Request to {url} failed: {e}") from e

    def _fail(self, message: str, error: OIDCFlowError) -> None:
        self.phase = OIDCPhase.FAILED
        if isinstance(error, ProviderHttpError):
            logger.error(
                f"{message}: {error}; provider response: {error.body}",
                extra={"error_type": type(error).__name__},
            )
        else:
            logger.error(f"{message}: {error}", extra={"error_type": type(error).__name__})


def decode_id_token(id_token: str) -> Optional[Dict[str, Any]]:
    """
    Decode ID token claims without verifying the signature.

    Only used to read the nonce of a token received directly from the token
    endpoint over TLS.
    """
    try:
        return jwt.decode(id_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning(f"Could not decode ID token: {e}")
        return None

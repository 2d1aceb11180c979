"""
Exception taxonomy for the authentication core.

Token verification errors never reach end users: the session store turns
every one of them into "no session". OIDC errors are reported to users with
a single generic message while the detail stays in the server logs.
"""

from typing import Optional


class AuthError(Exception):
    """Base exception for authentication errors"""
    pass


class ConfigurationError(AuthError):
    """Required configuration is missing or unusable"""
    pass


class DecodeError(AuthError):
    """A token segment is not valid base64url text"""
    pass


# =============================================================================
# Token Verification
# =============================================================================

class TokenVerificationError(AuthError):
    """Base exception for session token verification failures"""
    pass


class MalformedToken(TokenVerificationError):
    """Token does not have a recognizable shape"""
    pass


class BadSignature(TokenVerificationError):
    """Signature does not match the header and payload"""
    pass


class MalformedPayload(TokenVerificationError):
    """Payload could not be decoded, parsed or validated"""
    pass


class Expired(TokenVerificationError):
    """Token expiry lies in the past"""
    pass


# =============================================================================
# OIDC Flow
# =============================================================================

class OIDCFlowError(AuthError):
    """Base exception for OIDC authorization code flow failures"""
    pass


class MissingClientSecret(OIDCFlowError):
    """Code exchange attempted without a configured client secret"""
    pass


class ProviderHttpError(OIDCFlowError):
    """Identity provider answered with a non-success status"""

    def __init__(self, endpoint: str, status_code: int, body: Optional[str] = None):
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        super().__init__(f"{endpoint} returned HTTP {status_code}")


class ProviderTimeout(OIDCFlowError):
    """Identity provider did not answer within the configured ceiling"""
    pass


class CsrfStateMismatch(OIDCFlowError):
    """Returned state does not match the state generated for the attempt"""
    pass


class MockAuthDisabled(AuthError):
    """Mock sign-in requested while mock tokens are disabled"""
    pass

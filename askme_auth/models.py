"""
Data Models Module

This module defines Pydantic models for the authentication core and its
HTTP surface.

Models are organized by functional area:
- Session models (token claims, normalized session user)
- OIDC models (auth state, provider tokens, user info, provider errors)
- Request/response models for the auth routes
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


SessionKind = Literal["regular"]


# ============================================================================
# Session Models
# ============================================================================

class SessionIdentity(BaseModel):
    """Identity handed to the token issuer at sign-in."""
    subject_id: str = Field(..., description="Opaque user identifier", min_length=1)
    original_identity: str = Field(..., description="Plain identity string (email)", min_length=1)
    kind: SessionKind = Field(default="regular", description="Session kind tag")


class SessionClaims(BaseModel):
    """Claims carried inside a session token payload."""
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(..., alias="sub", min_length=1)
    pseudonymous_identifier: str = Field(..., alias="pid")
    original_identity: str = Field(..., alias="identity", min_length=1)
    kind: SessionKind = Field(default="regular", alias="kind")
    issued_at: int = Field(..., alias="iat", description="Unix seconds")
    expires_at: int = Field(..., alias="exp", description="Unix seconds")


class SessionUser(BaseModel):
    """Normalized identity returned to the rest of the application."""
    subject_id: str
    pseudonymous_identifier: str
    original_identity: str
    kind: SessionKind = "regular"

    @classmethod
    def from_claims(cls, claims: SessionClaims) -> "SessionUser":
        return cls(
            subject_id=claims.subject_id,
            pseudonymous_identifier=claims.pseudonymous_identifier,
            original_identity=claims.original_identity,
            kind=claims.kind,
        )


# ============================================================================
# OIDC Models
# ============================================================================

class OIDCAuthState(BaseModel):
    """Client-held correlation data for one authorization attempt."""
    state: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)


class ProviderTokens(BaseModel):
    """Token endpoint response."""
    model_config = ConfigDict(extra="ignore")

    access_token: str
    id_token: Optional[str] = None
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None


class OIDCUserInfo(BaseModel):
    """Profile of the authenticated identity, in OIDC claim names."""
    sub: str
    name: Optional[str] = None
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    preferred_username: Optional[str] = None
    locale: Optional[str] = None


class OIDCError(BaseModel):
    """Error reported by the provider on the redirect callback."""
    error: str
    error_description: Optional[str] = None
    error_uri: Optional[str] = None


# ============================================================================
# Request/Response Models
# ============================================================================

class LoginRequest(BaseModel):
    """Local email/password sign-in."""
    email: EmailStr = Field(..., description="Account email address")
    password: str = Field(..., description="Account password", min_length=6)


class MockLoginRequest(BaseModel):
    """Development sign-in producing an unsigned mock token."""
    email: EmailStr


class OIDCCallbackRequest(BaseModel):
    """Callback artifacts forwarded by the browser after the provider redirect."""
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None
    error_uri: Optional[str] = None
    stored_state: Optional[OIDCAuthState] = Field(
        None,
        description="Auth state the client kept since the authorization redirect",
    )


class AuthorizationUrlResponse(BaseModel):
    url: str
    state: OIDCAuthState


class SessionResponse(BaseModel):
    ok: bool
    user: Optional[SessionUser] = None

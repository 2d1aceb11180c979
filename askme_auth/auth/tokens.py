"""
Session Token Module
====================

Issues and verifies the self-contained session tokens carried in the session
cookie.

Two token shapes reach the verification boundary:

- signed tokens: ``b64url(header).b64url(payload).b64url(hmac_sha256)``
- legacy mock tokens: ``mock_token_<hex-hash>_<unix-ms>_<identity>``, accepted
  without any signature for local development only

`parse_token` resolves a raw string into one of the two shapes exactly once;
`verify_token` then handles each shape on its own path, so a signed token that
fails its checks can never be rescued by the mock path.
"""

import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Optional, Union

from pydantic import ValidationError

from ..config import Settings
from ..errors import (
    BadSignature,
    DecodeError,
    Expired,
    MalformedPayload,
    MalformedToken,
)
from ..models import SessionClaims, SessionIdentity
from . import codec, signer

logger = logging.getLogger(__name__)


MOCK_TOKEN_PREFIX = "mock_token_"

# Unix milliseconds, ASCII digits only
_MOCK_TIMESTAMP_PATTERN = re.compile(r"[0-9]{1,16}")

TOKEN_HEADER = {"alg": signer.ALGORITHM_NAME, "typ": "JWT"}


# =============================================================================
# Pseudonymous Identifier
# =============================================================================

def derive_pseudonymous_id(identity: str) -> str:
    """
    One-way, display-safe transform of an identity string.

    Example:
        >>> derive_pseudonymous_id("admin@example.com")  # doctest: +SKIP
        'a1b2-c3d4e-f5a6-b7c8'
    """
    digest = hashlib.sha512(f"AskMe{identity}".encode("utf-8")).hexdigest()
    return f"{digest[0:4]}-{digest[5:10]}-{digest[11:15]}-{digest[16:20]}"


# =============================================================================
# Token Shapes
# =============================================================================

@dataclass(frozen=True)
class SignedToken:
    header_segment: str
    payload_segment: str
    signature_segment: str

    @property
    def signing_input(self) -> bytes:
        return f"{self.header_segment}.{self.payload_segment}".encode("ascii")


@dataclass(frozen=True)
class MockToken:
    identity_hash: str
    issued_at_ms: int
    identity: str


ParsedToken = Union[SignedToken, MockToken]


def parse_token(raw: str) -> ParsedToken:
    """
    Resolve a raw cookie value into a signed or mock token.

    Raises:
        MalformedToken: If the value matches neither shape
    """
    if not raw:
        raise MalformedToken("Empty token")

    if raw.startswith(MOCK_TOKEN_PREFIX):
        return _parse_mock_token(raw)

    parts = raw.split(".")
    if len(parts) != 3 or not all(parts):
        raise MalformedToken("Token must have three non-empty segments")

    try:
        parts[0].encode("ascii")
        parts[1].encode("ascii")
    except UnicodeEncodeError as e:
        raise MalformedToken("Token contains non-ASCII characters") from e

    return SignedToken(*parts)


def _parse_mock_token(raw: str) -> MockToken:
    # The identity keeps any underscores of its own
    fields = raw[len(MOCK_TOKEN_PREFIX):].split("_", 2)
    if len(fields) != 3 or not all(fields):
        raise MalformedToken("Mock token must carry hash, timestamp and identity")

    identity_hash, timestamp, identity = fields
    if not _MOCK_TIMESTAMP_PATTERN.fullmatch(timestamp):
        raise MalformedToken("Mock token timestamp is not numeric")

    return MockToken(identity_hash=identity_hash, issued_at_ms=int(timestamp), identity=identity)


# =============================================================================
# Token Creation
# =============================================================================

def build_session_claims(
    identity: SessionIdentity,
    settings: Settings,
    now: Optional[int] = None,
) -> SessionClaims:
    """
    Augment a sign-in identity with the pseudonymous id and validity window.

    Args:
        identity: Subject id, plain identity and kind of the user
        settings: Application settings (session lifetime)
        now: Issue time in unix seconds (defaults to the current time)
    """
    issued_at = int(time.time()) if now is None else now
    return SessionClaims(
        subject_id=identity.subject_id,
        pseudonymous_identifier=derive_pseudonymous_id(identity.original_identity),
        original_identity=identity.original_identity,
        kind=identity.kind,
        issued_at=issued_at,
        expires_at=issued_at + settings.session_lifetime_seconds,
    )


def encode_session_token(claims: SessionClaims, secret: str) -> str:
    """Serialize and sign claims as ``header.payload.signature``."""
    header_segment = codec.encode(json.dumps(TOKEN_HEADER, separators=(",", ":")))
    payload_segment = codec.encode(
        json.dumps(claims.model_dump(by_alias=True), separators=(",", ":"))
    )

    signing_input = f"{header_segment}.{payload_segment}"
    signature = signer.sign(signing_input.encode("ascii"), secret)

    return f"{signing_input}.{codec.encode_bytes(signature)}"


def issue_session_token(
    identity: SessionIdentity,
    settings: Settings,
    now: Optional[int] = None,
) -> str:
    """
    Create a signed session token for `identity`.

    Example:
        >>> identity = SessionIdentity(subject_id="42", original_identity="user@askme.co.th")
        >>> token = issue_session_token(identity, get_settings())  # doctest: +SKIP
    """
    claims = build_session_claims(identity, settings, now=now)
    token = encode_session_token(claims, settings.session_signing_secret)

    logger.debug(
        "Issued session token",
        extra={"user_id": claims.subject_id, "expires_at": claims.expires_at},
    )
    return token


def issue_mock_token(identity: str, now_ms: Optional[int] = None) -> str:
    """Build an unsigned development token for `identity`."""
    issued_at_ms = int(time.time() * 1000) if now_ms is None else now_ms
    identity_hash = hashlib.md5(identity.encode("utf-8")).hexdigest()
    return f"{MOCK_TOKEN_PREFIX}{identity_hash}_{issued_at_ms}_{identity}"


# =============================================================================
# Token Verification
# =============================================================================

def verify_token(raw: str, settings: Settings, now: Optional[int] = None) -> SessionClaims:
    """
    Verify a session cookie value and return its claims.

    The pseudonymous identifier in the result is always recomputed from the
    plain identity; the value stored in the payload is ignored.

    Raises:
        MalformedToken: Unrecognized shape, or a mock token while mock
                        tokens are disabled
        BadSignature: Signature does not match
        MalformedPayload: Payload cannot be decoded or validated
        Expired: Token lifetime is over
    """
    current_time = int(time.time()) if now is None else now
    parsed = parse_token(raw)

    if isinstance(parsed, MockToken):
        if not settings.mock_tokens_enabled:
            raise MalformedToken("Mock tokens are disabled")
        claims = _claims_from_mock_token(parsed, settings)
    else:
        claims = _verify_signed_token(parsed, settings.session_signing_secret)

    if claims.expires_at < current_time:
        raise Expired(f"Token expired at {claims.expires_at}")

    return claims.model_copy(
        update={"pseudonymous_identifier": derive_pseudonymous_id(claims.original_identity)}
    )


def _verify_signed_token(token: SignedToken, secret: str) -> SessionClaims:
    try:
        signature = codec.decode_bytes(token.signature_segment)
    except DecodeError as e:
        raise BadSignature("Signature segment is not valid base64url") from e

    if not signer.verify(token.signing_input, signature, secret):
        raise BadSignature("Signature mismatch")

    try:
        payload = json.loads(codec.decode(token.payload_segment))
        return SessionClaims.model_validate(payload)
    except (DecodeError, ValueError, ValidationError) as e:
        raise MalformedPayload(f"Invalid token payload: {e}") from e


def _claims_from_mock_token(token: MockToken, settings: Settings) -> SessionClaims:
    logger.warning("Accepting unsigned mock session token")
    issued_at = token.issued_at_ms // 1000
    return SessionClaims(
        subject_id=token.identity_hash,
        pseudonymous_identifier=derive_pseudonymous_id(token.identity),
        original_identity=token.identity,
        kind="regular",
        issued_at=issued_at,
        expires_at=issued_at + settings.session_lifetime_seconds,
    )

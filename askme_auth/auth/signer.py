"""
HMAC-SHA256 signing of session token contents.
"""

from jwt.algorithms import HMACAlgorithm
from jwt.exceptions import InvalidKeyError

from ..errors import ConfigurationError


ALGORITHM_NAME = "HS256"

_hmac = HMACAlgorithm(HMACAlgorithm.SHA256)


def derive_key(secret: str) -> bytes:
    """
    Turn the shared secret into HMAC key bytes.

    Raises:
        ConfigurationError: If the secret is empty or looks like an
                            asymmetric key (PEM / SSH)
    """
    if not secret:
        raise ConfigurationError("Signing secret is empty")
    try:
        return _hmac.prepare_key(secret)
    except InvalidKeyError as e:
        raise ConfigurationError(f"Signing secret is not usable as an HMAC key: {e}") from e


def sign(data: bytes, secret: str) -> bytes:
    """Return the raw HMAC-SHA256 signature of `data`."""
    return _hmac.sign(data, derive_key(secret))


def verify(data: bytes, signature: bytes, secret: str) -> bool:
    """Compare `signature` against the expected one in constant time."""
    return _hmac.verify(data, derive_key(secret), signature)

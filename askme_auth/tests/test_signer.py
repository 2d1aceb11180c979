"""
Tests for HMAC-SHA256 signing.
"""

import hashlib
import hmac

import pytest

from askme_auth.auth import signer
from askme_auth.errors import ConfigurationError


SECRET = "signer-test-secret-0123456789abcdef"


def test_signature_is_hmac_sha256():
    data = b"header.payload"
    expected = hmac.new(SECRET.encode("utf-8"), data, hashlib.sha256).digest()

    assert signer.sign(data, SECRET) == expected


def test_verify_accepts_own_signature():
    signature = signer.sign(b"header.payload", SECRET)
    assert signer.verify(b"header.payload", signature, SECRET)


def test_verify_rejects_other_data():
    signature = signer.sign(b"header.payload", SECRET)
    assert not signer.verify(b"header.payloae", signature, SECRET)


def test_verify_rejects_other_secret():
    signature = signer.sign(b"header.payload", SECRET)
    assert not signer.verify(b"header.payload", signature, SECRET + "x")


def test_empty_secret_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        signer.sign(b"data", "")


def test_pem_key_is_rejected_as_secret():
    pem = "-----BEGIN PUBLIC KEY-----\nMIIBIjANBgkqhkiG9w0BAQEFAAOCAQ8AMIIBCgKCAQEA\n-----END PUBLIC KEY-----"
    with pytest.raises(ConfigurationError):
        signer.sign(b"data", pem)

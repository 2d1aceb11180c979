"""
Session Facade and Local Credential Tests
"""

from unittest.mock import Mock

import pytest
from fastapi import Response

from askme_auth.auth.credentials import (
    LocalAccount,
    StaticCredentialStore,
    normalize_email,
    subject_id_for,
)
from askme_auth.auth.facade import SessionFacade
from askme_auth.auth.session import CookieSessionStore
from askme_auth.auth.tokens import derive_pseudonymous_id
from askme_auth.errors import MockAuthDisabled
from askme_auth.models import OIDCUserInfo
from askme_auth.tests.conftest import make_request, set_cookie_headers


def _facade(settings, cookies=None, credentials=None):
    response = Response()
    store = CookieSessionStore(make_request(cookies), response, settings)
    credentials = credentials or StaticCredentialStore.from_settings(settings)
    return SessionFacade(store, credentials, settings), response


def _session_cookie(response):
    return set_cookie_headers(response)[0].split(";", 1)[0].split("=", 1)[1]


# ============================================================================
# Credentials
# ============================================================================

class TestStaticCredentialStore:
    def test_valid_credentials(self):
        store = StaticCredentialStore({"Admin@Example.com": "correct-horse"})

        account = store.authenticate(" admin@example.com ", "correct-horse")

        assert account == LocalAccount(subject_id=subject_id_for("admin@example.com"), email="admin@example.com")

    def test_wrong_password(self):
        store = StaticCredentialStore({"admin@example.com": "correct-horse"})
        assert store.authenticate("admin@example.com", "battery-staple") is None

    def test_unknown_email(self):
        store = StaticCredentialStore({"admin@example.com": "correct-horse"})
        assert store.authenticate("nobody@example.com", "correct-horse") is None

    def test_from_settings_without_account(self, settings):
        store = StaticCredentialStore.from_settings(settings.model_copy(update={"LOCAL_ADMIN_EMAIL": None}))
        assert store.authenticate("admin@example.com", "correct-horse") is None

    def test_subject_id_ignores_case_and_whitespace(self):
        assert subject_id_for(" USER@askme.co.th") == subject_id_for("user@askme.co.th")
        assert normalize_email(" USER@askme.co.th ") == "user@askme.co.th"


# ============================================================================
# Facade
# ============================================================================

class TestSignIn:
    def test_sign_in_sets_cookie_and_returns_user(self, settings):
        facade, response = _facade(settings)

        user = facade.sign_in("admin@example.com", "correct-horse")

        assert user.original_identity == "admin@example.com"
        assert user.subject_id == subject_id_for("admin@example.com")
        assert user.pseudonymous_identifier == derive_pseudonymous_id("admin@example.com")
        assert len(set_cookie_headers(response)) == 1

    def test_rejected_sign_in_sets_no_cookie(self, settings):
        facade, response = _facade(settings)

        assert facade.sign_in("admin@example.com", "wrong-password") is None
        assert set_cookie_headers(response) == []

    def test_credentials_are_injected(self, settings):
        credentials = Mock()
        credentials.authenticate.return_value = LocalAccount(subject_id="ext-1", email="ext@askme.co.th")
        facade, _ = _facade(settings, credentials=credentials)

        user = facade.sign_in("ext@askme.co.th", "whatever")

        credentials.authenticate.assert_called_once_with("ext@askme.co.th", "whatever")
        assert user.subject_id == "ext-1"

    def test_sign_in_with_oidc_identity(self, settings):
        facade, response = _facade(settings)

        user = facade.sign_in_with_identity(
            OIDCUserInfo(sub="graph-user-id-123", email="Somchai@AskMe.co.th")
        )

        assert user.subject_id == "graph-user-id-123"
        assert user.original_identity == "somchai@askme.co.th"
        assert len(set_cookie_headers(response)) == 1

    def test_oidc_identity_falls_back_to_principal_name(self, settings):
        facade, _ = _facade(settings)

        user = facade.sign_in_with_identity(
            OIDCUserInfo(sub="abc", preferred_username="someone@askme.onmicrosoft.com")
        )

        assert user.original_identity == "someone@askme.onmicrosoft.com"

    def test_oidc_identity_without_email(self, settings):
        facade, response = _facade(settings)

        assert facade.sign_in_with_identity(OIDCUserInfo(sub="abc")) is None
        assert set_cookie_headers(response) == []


class TestCurrentUser:
    def test_round_trip(self, settings):
        facade, response = _facade(settings)
        facade.sign_in("admin@example.com", "correct-horse")

        next_facade, _ = _facade(settings, cookies={"session": _session_cookie(response)})
        user = next_facade.current_user()

        assert user.original_identity == "admin@example.com"

    def test_no_cookie(self, settings):
        facade, _ = _facade(settings)
        assert facade.current_user() is None

    def test_sign_out_deletes_cookie(self, settings):
        facade, response = _facade(settings, cookies={"session": "anything"})

        facade.sign_out()

        [header] = set_cookie_headers(response)
        assert "max-age=0" in header.lower()


class TestMockSignIn:
    def test_disabled_by_default(self, settings):
        facade, _ = _facade(settings)

        with pytest.raises(MockAuthDisabled):
            facade.sign_in_mock("dev@askme.co.th")

    def test_mock_session_is_readable(self, mock_settings):
        facade, response = _facade(mock_settings)

        user = facade.sign_in_mock("Dev@AskMe.co.th")
        cookie = _session_cookie(response).strip('"')

        assert cookie.startswith("mock_token_")
        assert user.original_identity == "dev@askme.co.th"

        next_facade, _ = _facade(mock_settings, cookies={"session": cookie})
        current = next_facade.current_user()
        assert current.subject_id == user.subject_id
        assert current.pseudonymous_identifier == user.pseudonymous_identifier

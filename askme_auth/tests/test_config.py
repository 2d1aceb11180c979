"""
Configuration Tests
"""

import pytest
from pydantic import ValidationError

from askme_auth.config import DEVELOPMENT_SESSION_SECRET, Settings, validate_configuration
from askme_auth.tests.conftest import TEST_SECRET, TEST_TENANT_ID, make_settings


class TestSigningSecret:
    def test_configured_secret(self, settings):
        assert settings.session_signing_secret == TEST_SECRET
        assert not settings.using_development_secret

    def test_missing_secret_is_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(SESSION_SECRET=None)

    def test_short_secret_is_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(SESSION_SECRET="too-short")

    def test_development_fallback_outside_production(self):
        settings = make_settings(SESSION_SECRET=None, USE_DEVELOPMENT_SECRET=True, APP_ENV="development")

        assert settings.using_development_secret
        assert settings.session_signing_secret == DEVELOPMENT_SESSION_SECRET

    def test_development_fallback_refused_in_production(self):
        with pytest.raises(ValidationError):
            make_settings(SESSION_SECRET=None, USE_DEVELOPMENT_SECRET=True, APP_ENV="production")


class TestDerivedSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None, SESSION_SECRET=TEST_SECRET)

        assert settings.SESSION_COOKIE_NAME == "session"
        assert settings.session_lifetime_seconds == 7 * 24 * 60 * 60
        assert settings.OIDC_SCOPE == "openid profile email User.Read"
        assert settings.OIDC_TENANT_ID == "common"
        assert not settings.OIDC_STRICT_STATE
        assert not settings.mock_tokens_enabled

    @pytest.mark.parametrize(
        "app_env, expected",
        [("development", False), ("test", True), ("production", True)],
    )
    def test_cookie_secure_by_environment(self, app_env, expected):
        assert make_settings(APP_ENV=app_env).cookie_secure is expected

    def test_mock_tokens_never_in_production(self):
        assert make_settings(ENABLE_MOCK_AUTH=True).mock_tokens_enabled
        assert not make_settings(ENABLE_MOCK_AUTH=True, APP_ENV="production").mock_tokens_enabled

    def test_oidc_endpoints(self, settings):
        authority = f"https://login.microsoftonline.com/{TEST_TENANT_ID}"

        assert settings.oidc_endpoints == {
            "authorization": f"{authority}/oauth2/v2.0/authorize",
            "token": f"{authority}/oauth2/v2.0/token",
            "userinfo": "https://graph.microsoft.com/v1.0/me",
            "logout": f"{authority}/oauth2/v2.0/logout",
        }

    def test_allowed_origins(self):
        settings = make_settings(ALLOWED_ORIGINS="https://askme.example, http://localhost:3000,")
        assert settings.allowed_origins_list == ["https://askme.example", "http://localhost:3000"]


class TestValidators:
    @pytest.mark.parametrize("tenant", ["common", "Organizations", "consumers", TEST_TENANT_ID.upper()])
    def test_valid_tenants(self, tenant):
        assert make_settings(OIDC_TENANT_ID=tenant).OIDC_TENANT_ID == tenant.lower()

    def test_invalid_tenant(self):
        with pytest.raises(ValidationError):
            make_settings(OIDC_TENANT_ID="contoso")

    def test_invalid_client_id(self):
        with pytest.raises(ValidationError):
            make_settings(OIDC_CLIENT_ID="not-a-guid")

    def test_log_level_is_normalized(self):
        assert make_settings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            make_settings(LOG_LEVEL="VERBOSE")


class TestConfigurationReport:
    def test_clean_strict_configuration(self):
        report = validate_configuration(make_settings(OIDC_STRICT_STATE=True))

        assert report["valid"]
        assert report["errors"] == []
        assert report["warnings"] == []

    def test_development_smells_are_reported(self):
        settings = make_settings(
            SESSION_SECRET=None,
            USE_DEVELOPMENT_SECRET=True,
            APP_ENV="development",
            ENABLE_MOCK_AUTH=True,
        )

        warnings = " ".join(validate_configuration(settings)["warnings"])

        assert "development secret" in warnings
        assert "mock tokens" in warnings
        assert "OIDC_STRICT_STATE" in warnings

    def test_missing_client_secret_warning(self):
        report = validate_configuration(make_settings(OIDC_CLIENT_SECRET=None))
        assert any("OIDC_CLIENT_SECRET" in warning for warning in report["warnings"])

    def test_half_configured_local_account(self):
        report = validate_configuration(make_settings(LOCAL_ADMIN_PASSWORD=None))

        assert not report["valid"]
        assert report["errors"] == ["LOCAL_ADMIN_EMAIL and LOCAL_ADMIN_PASSWORD must be set together"]

from __future__ import annotations

from ephemeral_share.app.settings import ShareServiceSettings


def test_defaults_are_valid_local():
    settings = ShareServiceSettings()
    assert settings.is_local
    assert not settings.uses_supabase
    assert settings.validate() == []
    assert settings.default_expiry_minutes == 10
    assert settings.download_grace_seconds == 2.0


def test_non_local_requires_supabase():
    errors = ShareServiceSettings(environment="staging").validate()
    assert "staging: supabase_url is required" in errors
    assert "staging: supabase_service_role_key is required" in errors


def test_numeric_bounds():
    errors = ShareServiceSettings(
        max_file_size_bytes=0,
        default_expiry_minutes=0,
        min_password_length=0,
        reaper_interval_seconds=0,
        download_grace_seconds=-1,
    ).validate()
    assert len(errors) == 5


def test_from_env():
    settings = ShareServiceSettings.from_env({
        "ENVIRONMENT": "production",
        "SUPABASE_URL": "https://x.supabase.co",
        "SUPABASE_SERVICE_ROLE_KEY": "key",
        "FRONTEND_URL": "https://share.example.com",
        "MAX_FILE_SIZE": "1024",
        "REAPER_ENABLED": "false",
        "REAPER_INTERVAL_SECONDS": "60",
        "DOWNLOAD_GRACE_SECONDS": "0.5",
    })
    assert settings.environment == "production"
    assert settings.uses_supabase
    assert settings.max_file_size_bytes == 1024
    assert settings.reaper_enabled is False
    assert settings.reaper_interval_seconds == 60.0
    assert settings.download_grace_seconds == 0.5
    # CORS defaults to the frontend origin.
    assert settings.cors_origins == ("https://share.example.com",)
    assert settings.validate() == []


def test_from_env_cors_list():
    settings = ShareServiceSettings.from_env({
        "CORS_ORIGINS": "https://a.test, https://b.test,",
    })
    assert settings.cors_origins == ("https://a.test", "https://b.test")


def test_service_key_hidden_from_repr():
    settings = ShareServiceSettings(supabase_service_role_key="super-secret")
    assert "super-secret" not in repr(settings)


def test_download_grace_must_be_positive():
    errors = ShareServiceSettings(download_grace_seconds=0).validate()
    assert errors == ["download_grace_seconds must be positive"]

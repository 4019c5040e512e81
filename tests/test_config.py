"""Settings tests."""

import pytest
from pydantic import ValidationError

from uniai.core.config import Settings


def test_defaults():
    settings = Settings(app_env="test")

    assert settings.poll_interval_seconds == 3.0
    assert settings.poll_max_attempts == 60
    assert settings.task_timeout_seconds == 900
    assert settings.batch_stagger_seconds == 0.5
    assert settings.retention_days == 20


def test_cors_origins_list():
    settings = Settings(app_env="test", cors_origins="http://a.test, http://b.test")
    assert settings.cors_origins_list == ["http://a.test", "http://b.test"]


def test_provider_credentials_keyed_by_setting_names():
    settings = Settings(app_env="test", duomi_api_key="d", replicate_api_token="r")

    assert settings.provider_credentials["duomi_api_key"] == "d"
    assert settings.provider_credentials["replicate_api_token"] == "r"
    assert settings.provider_credentials["nano_banana_api_key"] == ""


def test_incomplete_storage_config_fails_outside_tests():
    with pytest.raises(ValidationError, match="STORAGE_BUCKET"):
        Settings(
            app_env="production",
            storage_enabled=True,
            storage_endpoint="s3.example.com",
            storage_bucket="",
            storage_access_key="a",
            storage_secret_key="s",
        )


def test_storage_validation_skipped_in_test_env():
    settings = Settings(app_env="test", storage_enabled=True)
    assert settings.storage_enabled is True

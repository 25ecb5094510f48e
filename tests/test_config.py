"""
Settings tests: defaults, invalid values, singleton.
"""

import logging

import pytest

from tryon.config import Settings, get_settings, reset_settings
from tryon.integrations.piapi_client import PiAPIClient
from tryon.integrations.provider_stub import StubTryOnProvider, get_provider
from tryon.payments.pricing import cost_for


def test_defaults(test_env):
    settings = get_settings()

    assert settings.poll_interval_seconds == 0
    assert settings.image_max_poll_attempts == 60
    assert settings.video_max_poll_attempts == 120
    assert settings.image_cost == 25
    assert settings.video_cost == 25
    assert settings.submit_attempts == 1
    assert settings.preferred_source_pattern == r'theapi\.app'
    assert settings.piapi_base_url == 'https://api.piapi.ai'
    assert settings.use_stub_provider is True


def test_invalid_values_fall_back_to_defaults(monkeypatch, test_env, caplog):
    monkeypatch.setenv('TRYON_IMAGE_MAX_POLL_ATTEMPTS', 'many')
    monkeypatch.setenv('TRYON_VIDEO_COST', '0')
    monkeypatch.setenv('LOG_LEVEL', 'LOUD')

    with caplog.at_level(logging.WARNING):
        settings = Settings()

    assert settings.image_max_poll_attempts == 60
    assert settings.video_cost == 25
    assert settings.log_level == logging.INFO
    assert "TRYON_IMAGE_MAX_POLL_ATTEMPTS" in caplog.text


def test_singleton_and_reset(test_env, monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv('TRYON_IMAGE_COST', '30')
    reset_settings()

    assert get_settings() is not first
    assert cost_for("image") == 30
    assert cost_for("video") == 25


def test_unknown_kind_has_no_price(test_env):
    with pytest.raises(ValueError):
        cost_for("audio")


def test_validate_rejects_unknown_storage_mode(test_env, monkeypatch):
    monkeypatch.setenv('STORAGE_MODE', 'postgres')
    with pytest.raises(ValueError):
        Settings().validate()


def test_provider_selection(test_env, monkeypatch):
    assert isinstance(get_provider(get_settings()), StubTryOnProvider)

    monkeypatch.setenv('TRYON_PROVIDER_STUB', '0')
    monkeypatch.setenv('PIAPI_API_KEY', 'live-key-123456')
    reset_settings()
    provider = get_provider(get_settings())

    assert isinstance(provider, PiAPIClient)
    assert provider.api_key == 'live-key-123456'


def test_validate_rejects_invalid_source_pattern(test_env, monkeypatch, caplog):
    monkeypatch.setenv('TRYON_PREFERRED_SOURCE_PATTERN', '[unclosed')

    with caplog.at_level(logging.ERROR), pytest.raises(ValueError):
        Settings().validate()

    assert "TRYON_PREFERRED_SOURCE_PATTERN" in caplog.text

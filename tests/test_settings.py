"""Tests for environment configuration."""

import pytest

from utils.settings import DEFAULT_MODEL, AnalyzerSettings


def test_defaults_when_environment_is_empty():
    settings = AnalyzerSettings.from_env({})
    assert settings.openai_model == DEFAULT_MODEL
    assert settings.openai_base_url is None
    assert settings.max_tokens == 600
    assert settings.request_timeout == 60.0
    assert settings.image_detail == "high"
    assert settings.max_transport_bytes == 8 * 1024 * 1024


def test_environment_overrides():
    settings = AnalyzerSettings.from_env(
        {
            "OPENAI_MODEL": "gpt-4o",
            "OPENAI_BASE_URL": "https://proxy.example/v1",
            "ANALYSIS_TIMEOUT_SECONDS": "12.5",
            "ANALYSIS_IMAGE_DETAIL": "LOW",
            "IMAGE_MAX_DIMENSION": "1024",
            "LOG_level": "ignored",
            "LOG_LEVEL": "debug",
            "SESSION_IDLE_TTL_SECONDS": "90",
        }
    )
    assert settings.openai_model == "gpt-4o"
    assert settings.openai_base_url == "https://proxy.example/v1"
    assert settings.request_timeout == 12.5
    assert settings.image_detail == "low"
    assert settings.max_image_dimension == 1024
    assert settings.log_level == "DEBUG"
    assert settings.session_idle_ttl == 90.0


@pytest.mark.parametrize(
    "env",
    [
        {"ANALYSIS_MAX_TOKENS": "lots"},
        {"ANALYSIS_TIMEOUT_SECONDS": "-1"},
        {"IMAGE_JPEG_QUALITY": "140"},
        {"SESSION_IDLE_TTL_SECONDS": "0"},
        {"ANALYSIS_IMAGE_DETAIL": "ultra"},
    ],
)
def test_invalid_values_are_rejected(env):
    with pytest.raises(ValueError):
        AnalyzerSettings.from_env(env)

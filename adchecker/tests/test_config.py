from pathlib import Path

import pytest
from pydantic import ValidationError

from adchecker.app.config import DEFAULT_IMAGE_TYPES, CheckerConfig


def test_defaults():
    config = CheckerConfig()

    assert config.MODEL_PROVIDER == "disabled"
    assert config.MAX_UPLOAD_SIZE_MB == 20
    assert config.max_upload_bytes == 20 * 1024 * 1024
    assert config.ACCEPTED_IMAGE_TYPES == DEFAULT_IMAGE_TYPES
    assert config.WORKFLOW_PROFILE == "pdf_checklist"


def test_config_is_frozen():
    config = CheckerConfig()

    with pytest.raises(ValidationError):
        config.MAX_UPLOAD_SIZE_MB = 25


def test_unknown_provider_is_rejected():
    with pytest.raises(ValidationError):
        CheckerConfig(MODEL_PROVIDER="claude")


def test_gemini_requires_key():
    with pytest.raises(ValidationError):
        CheckerConfig(MODEL_PROVIDER="gemini")

    config = CheckerConfig(MODEL_PROVIDER="gemini", GEMINI_API_KEY="secret")
    assert config.GEMINI_API_KEY.get_secret_value() == "secret"


def test_azure_requires_endpoint_and_deployment():
    with pytest.raises(ValidationError):
        CheckerConfig(MODEL_PROVIDER="azure_openai", AZURE_OPENAI_DEPLOYMENT="gpt")

    with pytest.raises(ValidationError):
        CheckerConfig(
            MODEL_PROVIDER="azure_openai",
            AZURE_OPENAI_ENDPOINT="https://example.openai.azure.com",
        )


def test_azure_requires_api_version():
    settings = {
        "MODEL_PROVIDER": "azure_openai",
        "AZURE_OPENAI_ENDPOINT": "https://example.openai.azure.com",
        "AZURE_OPENAI_DEPLOYMENT": "gpt",
    }

    with pytest.raises(ValidationError, match="AZURE_OPENAI_API_VERSION"):
        CheckerConfig(**settings)

    config = CheckerConfig(**settings, AZURE_OPENAI_API_VERSION="2024-10-21")
    assert config.AZURE_OPENAI_API_VERSION == "2024-10-21"


def test_session_limits_must_be_positive():
    with pytest.raises(ValidationError):
        CheckerConfig(MAX_SESSIONS=0)

    with pytest.raises(ValidationError):
        CheckerConfig(SESSION_IDLE_TTL_SECONDS=0)


def test_non_image_types_are_rejected():
    with pytest.raises(ValidationError):
        CheckerConfig(ACCEPTED_IMAGE_TYPES=("image/png", "application/zip"))


def test_sizes_must_be_positive():
    with pytest.raises(ValidationError):
        CheckerConfig(MAX_UPLOAD_SIZE_MB=0)


def test_unknown_profile_is_rejected():
    with pytest.raises(ValidationError):
        CheckerConfig(WORKFLOW_PROFILE="video")


def test_from_env(monkeypatch):
    monkeypatch.setenv("ADCHECKER_MODEL_PROVIDER", "gemini")
    monkeypatch.setenv("GEMINI_API_KEY", "k")
    monkeypatch.setenv("ADCHECKER_MAX_UPLOAD_SIZE_MB", "25")
    monkeypatch.setenv("ADCHECKER_ACCEPTED_IMAGE_TYPES", "image/png, image/jpeg")
    monkeypatch.setenv("ADCHECKER_SCENE_STORE_PATH", "/tmp/scenes.json")
    monkeypatch.setenv("ADCHECKER_WORKFLOW_PROFILE", "scene")

    config = CheckerConfig.from_env()

    assert config.MODEL_PROVIDER == "gemini"
    assert config.MAX_UPLOAD_SIZE_MB == 25
    assert config.ACCEPTED_IMAGE_TYPES == ("image/png", "image/jpeg")
    assert config.SCENE_STORE_PATH == Path("/tmp/scenes.json")
    assert config.WORKFLOW_PROFILE == "scene"

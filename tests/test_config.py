from __future__ import annotations

import pytest
from pydantic import ValidationError

from voice_chat.config import Settings


def test_defaults_match_original_client_locale() -> None:
    settings = Settings(_env_file=None)

    assert settings.default_language == "es-ES"
    assert settings.default_language in settings.supported_languages
    assert settings.quality_reference_ceiling == 128.0


def test_environment_overrides_use_prefix(monkeypatch) -> None:
    monkeypatch.setenv("VOICE_CHAT_API_BASE_URL", "http://chat.internal:9000")
    monkeypatch.setenv("VOICE_CHAT_VOLUME", "40")

    settings = Settings(_env_file=None)

    assert settings.api_base_url == "http://chat.internal:9000"
    assert settings.volume == 40.0


def test_out_of_range_volume_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("VOICE_CHAT_VOLUME", "150")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)

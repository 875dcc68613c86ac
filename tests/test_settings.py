"""Tests for startup configuration checks."""

import pytest

from remindbot.config import settings
from remindbot.errors import ConfigError


@pytest.fixture
def valid(monkeypatch) -> None:
    monkeypatch.setattr(settings, "USER_TIMEZONE", "Asia/Jakarta")
    monkeypatch.setattr(settings, "NLU_PROVIDER", "gemini")
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "key")
    monkeypatch.setattr(settings, "ENABLE_WHATSAPP_BRIDGE", True)
    monkeypatch.setattr(settings, "ENABLE_TELEGRAM_BOT_POLLING", False)
    monkeypatch.setattr(settings, "SWEEP_INTERVAL_SECONDS", 60.0)
    monkeypatch.setattr(settings, "SWEEP_CONCURRENCY", 1)
    monkeypatch.setattr(settings, "STORE_TIMEOUT_SECONDS", 10.0)
    monkeypatch.setattr(settings, "MESSENGER_TIMEOUT_SECONDS", 15.0)
    monkeypatch.setattr(settings, "NLU_TIMEOUT_SECONDS", 45.0)


@pytest.mark.usefixtures("valid")
class TestValidateSettings:
    """Fatal misconfiguration is reported before startup."""

    def test_valid(self) -> None:
        settings.validate_settings()

    @pytest.mark.parametrize(
        "name, value",
        [
            ("USER_TIMEZONE", "Mars/Olympus_Mons"),
            ("NLU_PROVIDER", "llama"),
            ("GEMINI_API_KEY", None),
            ("ENABLE_WHATSAPP_BRIDGE", False),
            ("SWEEP_INTERVAL_SECONDS", 0),
            ("SWEEP_CONCURRENCY", 0),
            ("STORE_TIMEOUT_SECONDS", -1.0),
        ],
    )
    def test_invalid(self, monkeypatch, name, value) -> None:
        monkeypatch.setattr(settings, name, value)
        with pytest.raises(ConfigError):
            settings.validate_settings()

    def test_openai_needs_its_own_key(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "NLU_PROVIDER", "openai")
        monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
        with pytest.raises(ConfigError, match="OPENAI_API_KEY"):
            settings.validate_settings()

    def test_telegram_needs_token(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "ENABLE_TELEGRAM_BOT_POLLING", True)
        monkeypatch.setattr(settings, "TELEGRAM_BOT_TOKEN", "")
        with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
            settings.validate_settings()


def test_id_list_skips_garbage(monkeypatch) -> None:
    monkeypatch.setenv("SOME_IDS", "12, abc,,34")
    assert settings._parse_id_list("SOME_IDS") == frozenset({12, 34})


def test_bad_number_falls_back(monkeypatch) -> None:
    monkeypatch.setenv("SOME_INTERVAL", "soon")
    assert settings._parse_float("SOME_INTERVAL", 60.0) == 60.0

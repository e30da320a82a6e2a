from __future__ import annotations

import dataclasses

import pytest

from scam_engine import config
from scam_engine.config import DEFAULT_GOVERNOR, DEFAULT_SCORING, GovernorConfig, ScoringConfig
from scam_engine.errors import ConfigurationError


@pytest.fixture
def no_dotenv(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda *args, **kwargs: False)
    for key in ("GROQ_API_KEY", "GROQ_MODEL", "REPLY_TIMEOUT_SECONDS", "LEDGER_MAX_RETRIES", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_settings_defaults(no_dotenv):
    settings = config.load_settings()
    assert settings.groq_api_key is None
    assert settings.groq_model == "llama-3.1-8b-instant"
    assert settings.reply_timeout_seconds == 5.0
    assert settings.ledger_max_retries == 3
    assert settings.log_level == "INFO"


def test_settings_from_environment(no_dotenv):
    no_dotenv.setenv("GROQ_API_KEY", "gsk_test")
    no_dotenv.setenv("REPLY_TIMEOUT_SECONDS", "2.5")
    no_dotenv.setenv("LEDGER_MAX_RETRIES", "4")
    no_dotenv.setenv("LOG_LEVEL", "debug")

    settings = config.load_settings()
    assert settings.groq_api_key == "gsk_test"
    assert settings.reply_timeout_seconds == 2.5
    assert settings.ledger_max_retries == 4
    assert settings.log_level == "DEBUG"


def test_empty_api_key_is_none(no_dotenv):
    no_dotenv.setenv("GROQ_API_KEY", "")
    assert config.load_settings().groq_api_key is None


def test_invalid_number_is_a_configuration_error(no_dotenv):
    no_dotenv.setenv("REPLY_TIMEOUT_SECONDS", "soon")
    with pytest.raises(ConfigurationError):
        config.load_settings()


def test_scoring_defaults():
    assert sum(DEFAULT_SCORING.weights.values()) == pytest.approx(1.0)
    assert DEFAULT_SCORING.scam_threshold == 0.15
    assert DEFAULT_GOVERNOR.terminate_threshold == 0.50


def test_scoring_config_validation():
    with pytest.raises(ConfigurationError):
        ScoringConfig(weights={"pattern": 1.0})
    with pytest.raises(ConfigurationError):
        dataclasses.replace(DEFAULT_SCORING, tier_bands=(("LOW", 0.2), ("HIGH", 0.6)))
    with pytest.raises(ConfigurationError):
        dataclasses.replace(DEFAULT_SCORING, similarity_threshold=0.0)


def test_governor_config_validation():
    with pytest.raises(ConfigurationError):
        GovernorConfig(defensive_threshold=0.5, blocking_threshold=0.3)
    with pytest.raises(ConfigurationError):
        GovernorConfig(repetition_limit=0)


def test_configs_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_GOVERNOR.repetition_limit = 5

"""
CONFIG - Environment settings and engine constants

Environment (loaded with python-dotenv):
    GROQ_API_KEY           optional, enables LLM replies
    GROQ_MODEL             default llama-3.1-8b-instant
    REPLY_TIMEOUT_SECONDS  default 5
    LEDGER_MAX_RETRIES     default 3
    LOG_LEVEL              default INFO

Scoring and governor constants were tuned empirically. They are kept as
named, frozen configuration so they can be overridden with
dataclasses.replace() without touching the scoring code.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

LAYER_NAMES = ("pattern", "behavior", "context", "intelligence", "urgency")


@dataclass(frozen=True)
class ScoringConfig:
    """Constants for the multi-layer scorer"""
    weights: Dict[str, float] = field(default_factory=lambda: {
        "pattern": 0.40,
        "behavior": 0.20,
        "context": 0.25,
        "intelligence": 0.10,
        "urgency": 0.05,
    })
    strong_layer_threshold: float = 0.3
    single_layer_floor: float = 0.35
    multi_layer_multiplier: float = 1.5
    scam_threshold: float = 0.15
    # (tier name, minimum confidence), highest first
    tier_bands: Tuple[Tuple[str, float], ...] = (
        ("CRITICAL", 0.8),
        ("HIGH", 0.6),
        ("MEDIUM", 0.4),
        ("LOW", 0.2),
    )
    similarity_threshold: float = 0.6
    regex_hit_score: float = 0.15
    phrase_hit_score: float = 0.20

    def __post_init__(self):
        missing = [name for name in LAYER_NAMES if name not in self.weights]
        if missing:
            raise ConfigurationError(f"Missing layer weights: {missing}")
        if any(w < 0 for w in self.weights.values()):
            raise ConfigurationError("Layer weights must be non-negative")
        if not 0 < self.similarity_threshold <= 1:
            raise ConfigurationError("similarity_threshold must be in (0, 1]")
        if self.multi_layer_multiplier < 1:
            raise ConfigurationError("multi_layer_multiplier must be >= 1")
        bands = [minimum for _, minimum in self.tier_bands]
        if bands != sorted(bands, reverse=True):
            raise ConfigurationError("tier_bands must be ordered highest first")


@dataclass(frozen=True)
class GovernorConfig:
    """Mode thresholds for the response governor (fractions of 1.0)"""
    defensive_threshold: float = 0.15
    blocking_threshold: float = 0.30
    terminate_threshold: float = 0.50
    repetition_limit: int = 3
    max_advice_items: int = 2

    def __post_init__(self):
        if not (0 <= self.defensive_threshold
                <= self.blocking_threshold
                <= self.terminate_threshold <= 1):
            raise ConfigurationError("Governor thresholds must be ordered within [0, 1]")
        if self.repetition_limit < 1:
            raise ConfigurationError("repetition_limit must be >= 1")


@dataclass(frozen=True)
class Settings:
    groq_api_key: Optional[str]
    groq_model: str
    reply_timeout_seconds: float
    ledger_max_retries: int
    log_level: str


def load_settings() -> Settings:
    load_dotenv()

    groq_api_key = os.getenv("GROQ_API_KEY") or None
    groq_model = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")

    try:
        reply_timeout_seconds = float(os.getenv("REPLY_TIMEOUT_SECONDS", "5"))
        ledger_max_retries = int(os.getenv("LEDGER_MAX_RETRIES", "3"))
    except ValueError as e:
        raise ConfigurationError(f"Invalid numeric setting: {e}") from e

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return Settings(
        groq_api_key=groq_api_key,
        groq_model=groq_model,
        reply_timeout_seconds=reply_timeout_seconds,
        ledger_max_retries=ledger_max_retries,
        log_level=log_level,
    )


DEFAULT_SCORING = ScoringConfig()
DEFAULT_GOVERNOR = GovernorConfig()

from __future__ import annotations

import pytest

from scam_engine.config import Settings
from scam_engine.models import DetectionResult


@pytest.fixture
def make_detection():
    def _make(confidence: float) -> DetectionResult:
        return DetectionResult.empty().with_confidence(confidence)
    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings(
        groq_api_key=None,
        groq_model="llama-3.1-8b-instant",
        reply_timeout_seconds=1.0,
        ledger_max_retries=2,
        log_level="INFO",
    )

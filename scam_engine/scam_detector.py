"""
SCAM DETECTOR - Multi-layer scam scorer

LAYERS (each bounded to [0, 1], with the names of what matched):
1. Pattern      - category regexes and known scam phrases
2. Behavior     - repetition, rapid-fire requests, escalating pressure,
                  slow-burn urgency, emotional manipulation
3. Context      - where in the conversation a request shows up
4. Intelligence - payment handles, phone numbers, untrusted URLs
5. Urgency      - temporal pressure, threat of loss, call to action

COMBINATION:
- weighted sum of the layers
- any strong layer floors the total, two or more multiply it
- capped at 1.0, rounded to 4 places

Scoring is a pure function of (message, history): no session state is read
or written here.
"""

import re
import logging
from typing import List, Optional, Sequence, Tuple

from .config import DEFAULT_SCORING, LAYER_NAMES, ScoringConfig
from .errors import InputError
from .intelligence_extractor import extract_intelligence, untrusted_urls
from .models import DetectionResult, LayerScores, risk_tier_for, user_texts
from .patterns import DEFAULT_CATALOGUE, PatternCatalogue

logger = logging.getLogger(__name__)

LayerResult = Tuple[float, List[str]]


def tokenize(text: str) -> set:
    return set(re.findall(r"\w+", (text or "").lower()))


def jaccard_similarity(first: str, second: str) -> float:
    a, b = tokenize(first), tokenize(second)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def validate_message(message) -> str:
    if not isinstance(message, str):
        raise InputError(f"Message must be a string, got {type(message).__name__}")
    if not message.strip():
        raise InputError("Message is empty")
    return message


class MultiLayerScorer:
    """
    Deterministic five-layer scorer.

    Pattern tables come from a PatternCatalogue and constants from a
    ScoringConfig so either can be swapped in tests.
    """

    def __init__(
        self,
        catalogue: Optional[PatternCatalogue] = None,
        config: Optional[ScoringConfig] = None,
    ):
        self.catalogue = catalogue or DEFAULT_CATALOGUE
        self.config = config or DEFAULT_SCORING

    def score(self, message, history: Optional[Sequence] = None) -> DetectionResult:
        try:
            message = validate_message(message)
        except InputError as e:
            logger.warning(f"Scoring skipped: {e}")
            return DetectionResult.empty()

        text = message.lower()
        prior = user_texts(history)

        pattern_score, pattern_names, categories = self._pattern_layer(text)
        layers = {
            "pattern": (pattern_score, pattern_names),
            "behavior": self._behavior_layer(text, prior),
            "context": self._context_layer(text, prior),
            "intelligence": self._intelligence_layer(message),
            "urgency": self._urgency_layer(text),
        }

        scores = {name: min(layers[name][0], 1.0) for name in LAYER_NAMES}
        matched = []
        for name in LAYER_NAMES:
            for pattern_name in layers[name][1]:
                if pattern_name not in matched:
                    matched.append(pattern_name)

        confidence = self._combine(scores)
        result = DetectionResult(
            isScam=confidence >= self.config.scam_threshold,
            confidence=confidence,
            riskTier=risk_tier_for(confidence, self.config.tier_bands),
            categories=categories,
            matchedPatterns=matched,
            layerScores=LayerScores(**scores),
        )

        if result.isScam:
            logger.debug(
                f"Scored {confidence:.2f} ({result.riskTier.value}) "
                f"categories={categories} layers={scores}"
            )
        return result

    def _combine(self, scores: dict) -> float:
        cfg = self.config
        total = sum(cfg.weights[name] * scores[name] for name in LAYER_NAMES)

        strong = sum(1 for value in scores.values() if value >= cfg.strong_layer_threshold)
        if strong >= 1:
            total = max(total, cfg.single_layer_floor)
        if strong >= 2:
            total *= cfg.multi_layer_multiplier

        return round(min(total, 1.0), 4)

    # =========================================================================
    # LAYERS
    # =========================================================================

    def _pattern_layer(self, text: str) -> Tuple[float, List[str], List[str]]:
        score = 0.0
        names: List[str] = []
        categories: List[str] = []

        for entry in self.catalogue.category_patterns:
            if entry.pattern.search(text):
                score += self.config.regex_hit_score
                names.append(entry.name)
                if entry.category not in categories:
                    categories.append(entry.category)

        for phrase in self.catalogue.phrases:
            if phrase in text:
                score += self.config.phrase_hit_score
                names.append(phrase)

        return min(score, 1.0), names, categories

    def _behavior_layer(self, text: str, prior: List[str]) -> LayerResult:
        signal = self.catalogue.signal
        score = 0.0
        names = []

        if any(jaccard_similarity(text, earlier) > self.config.similarity_threshold for earlier in prior):
            score += 0.3
            names.append("repetition")

        recent = (prior + [text])[-3:]
        if len(recent) == 3 and all(signal("request_verb", turn) for turn in recent):
            score += 0.25
            names.append("aggressive_persistence")

        pressure_hits = sum(1 for word in self.catalogue.pressure_words if word.search(text))
        if pressure_hits >= 2:
            score += 0.2
            names.append("escalating_pressure")

        if len(prior) >= 2 and signal("urgency_presence", text):
            first_half = prior[:len(prior) // 2]
            if not any(signal("urgency_presence", turn) for turn in first_half):
                score += 0.2
                names.append("slow_burn")

        if signal("emotional_phrasing", text):
            score += 0.2
            names.append("emotional_manipulation")

        return min(score, 1.0), names

    def _context_layer(self, text: str, prior: List[str]) -> LayerResult:
        signal = self.catalogue.signal
        score = 0.0
        names = []

        if len(prior) <= 1 and signal("reward_mention", text):
            score += 0.4
            names.append("unsolicited_prize")

        if len(prior) < 3 and signal("sensitive_request", text):
            score += 0.5
            names.append("early_sensitive_request")

        if signal("prize_mention", text) and signal("payment_mention", text):
            score += 0.6
            names.append("prize_with_payment_paradox")

        if signal("reward_mention", text) and signal("link_mention", text):
            score += 0.4
            names.append("reward_link")

        if signal("payment_ask", text) and any(signal("no_payment_claim", turn) for turn in prior):
            score += 0.5
            names.append("compliance_contradiction")

        if signal("authority_mention", text):
            score += 0.3
            names.append("authority_mention")

        return min(score, 1.0), names

    def _intelligence_layer(self, message: str) -> LayerResult:
        intel = extract_intelligence(message)
        score = 0.0
        names = []

        if intel.upiIds:
            score += 0.5
            names.append("upi_id")
        if intel.phoneNumbers:
            score += 0.3
            names.append("phone_number")
        if untrusted_urls(intel.urls):
            score += 0.4
            names.append("suspicious_url")
        if len(names) >= 2:
            score += 0.3
            names.append("multiple_intel_types")

        return min(score, 1.0), names

    def _urgency_layer(self, text: str) -> LayerResult:
        signal = self.catalogue.signal
        names = [
            name for name in ("temporal_pressure", "threat_of_loss", "call_to_action")
            if signal(name, text)
        ]
        score = 0.25 * len(names)
        if len(names) >= 2:
            score += 0.3
        return min(score, 1.0), names


# Singleton instance
scam_detector = MultiLayerScorer()


def score(message, history: Optional[Sequence] = None) -> DetectionResult:
    return scam_detector.score(message, history)

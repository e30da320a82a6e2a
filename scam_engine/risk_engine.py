"""
RISK ACCUMULATION LEDGER - Monotonic all-time risk record per session

KEY SAFETY RULES:
1. maxScamProbability is BOUNDED 0-100 and never decreases
2. scamEverDetected once True stays True
3. highestPhase and responseMode only move forward
4. A detected scam contributes at least 30, whatever its confidence

PHASE FROM A SINGLE TURN:
- CRITICAL / HIGH tier      -> late
- MEDIUM tier or any scam   -> mid
- otherwise                 -> early
- TERMINATED state          -> final

Ledgers are immutable; every operation returns a new one.
"""

import logging
from typing import Optional

from .models import (
    ConversationState, DetectionResult, EngagementPhase, ResponseMode,
    RiskTier, SessionRiskLedger, highest,
)

logger = logging.getLogger(__name__)

SCAM_PROBABILITY_FLOOR = 30


def turn_probability(detection: DetectionResult) -> int:
    probability = max(0, min(round(detection.confidence * 100), 100))
    if detection.isScam:
        probability = max(probability, SCAM_PROBABILITY_FLOOR)
    return probability


def turn_phase(
    detection: DetectionResult,
    state: Optional[ConversationState] = None,
) -> EngagementPhase:
    if state == ConversationState.TERMINATED:
        return EngagementPhase.FINAL
    if detection.riskTier in (RiskTier.CRITICAL, RiskTier.HIGH):
        return EngagementPhase.LATE
    if detection.riskTier == RiskTier.MEDIUM or detection.isScam:
        return EngagementPhase.MID
    return EngagementPhase.EARLY


def merge(prior: SessionRiskLedger, current: SessionRiskLedger) -> SessionRiskLedger:
    """Field-wise OR / max along each field's order"""
    return SessionRiskLedger(
        scamEverDetected=prior.scamEverDetected or current.scamEverDetected,
        maxScamProbability=max(prior.maxScamProbability, current.maxScamProbability),
        highestPhase=highest(prior.highestPhase, current.highestPhase),
        responseMode=highest(prior.responseMode, current.responseMode),
    )


def accumulate(
    detection: DetectionResult,
    prior: Optional[SessionRiskLedger] = None,
    *,
    state: Optional[ConversationState] = None,
) -> SessionRiskLedger:
    """Fold one turn's detection into the session ledger"""
    prior = prior or SessionRiskLedger()
    current = SessionRiskLedger(
        scamEverDetected=detection.isScam,
        maxScamProbability=turn_probability(detection),
        highestPhase=turn_phase(detection, state),
        responseMode=ResponseMode.NORMAL,
    )
    updated = merge(prior, current)

    if updated.maxScamProbability > prior.maxScamProbability:
        logger.info(
            f"📈 Max scam probability: {prior.maxScamProbability} -> "
            f"{updated.maxScamProbability}"
        )
    if updated.highestPhase != prior.highestPhase:
        logger.info(f"Phase: {prior.highestPhase.value} -> {updated.highestPhase.value}")
    return updated


def with_mode(ledger: SessionRiskLedger, mode: ResponseMode) -> SessionRiskLedger:
    """Advance the response mode; a lower mode is ignored"""
    mode = highest(ledger.responseMode, ResponseMode(mode))
    if mode == ledger.responseMode:
        return ledger
    logger.info(f"Response mode: {ledger.responseMode.value} -> {mode.value}")
    return ledger.model_copy(update={"responseMode": mode})

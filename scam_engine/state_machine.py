"""
STATE MACHINE - Conversation risk state transitions

State Flow (never moves backward):
SAFE -> SUSPICIOUS -> HIGH_RISK -> CONFIRMED_SCAM -> TERMINATED

Two ways forward:
1. Non-negotiable triggers - message content force-jumps the state no matter
   what the numeric score says (abuse, OTP/payment requests, links, rewards,
   threats, deadlines, authority claims). Checked in order.
2. Score bands - detection confidence, only when no trigger applied.
"""

import logging
from typing import Optional, Tuple

from .models import ConversationState, DetectionResult, EngagementPhase, rank
from .patterns import DEFAULT_CATALOGUE, PatternCatalogue

logger = logging.getLogger(__name__)

SCORE_BAND_SCENARIO = "score_band"

# (exclusive minimum confidence, state), highest first
SCORE_BANDS = (
    (0.8, ConversationState.CONFIRMED_SCAM),
    (0.4, ConversationState.HIGH_RISK),
    (0.2, ConversationState.SUSPICIOUS),
)

# (last turn of phase, phase)
PHASE_LIMITS = (
    (2, EngagementPhase.EARLY),
    (5, EngagementPhase.MID),
    (8, EngagementPhase.LATE),
)


class ConversationStateMachine:
    """
    Stateless transition function. The current state is passed in and the
    caller (pipeline) persists whatever comes back.
    """

    def __init__(self, catalogue: Optional[PatternCatalogue] = None):
        self.catalogue = catalogue or DEFAULT_CATALOGUE

    def transition(
        self,
        message: str,
        detection: DetectionResult,
        current_state: ConversationState = ConversationState.SAFE,
    ) -> Tuple[ConversationState, Optional[str]]:
        """
        Returns (new_state, scenario). Scenario is None when the state did
        not change.
        """
        current_state = ConversationState(current_state)
        text = message if isinstance(message, str) else ""

        for trigger in self.catalogue.triggers:
            if not trigger.pattern.search(text):
                continue
            if rank(trigger.target) > rank(current_state):
                logger.info(
                    f"🚨 Trigger '{trigger.scenario}': "
                    f"{current_state.value} -> {trigger.target.value}"
                )
                return trigger.target, trigger.scenario

        for minimum, state in SCORE_BANDS:
            if detection.confidence > minimum:
                if rank(state) > rank(current_state):
                    logger.info(
                        f"Score {detection.confidence:.2f}: "
                        f"{current_state.value} -> {state.value}"
                    )
                    return state, SCORE_BAND_SCENARIO
                break

        return current_state, None


def conversation_phase(turn_count: int) -> EngagementPhase:
    """Engagement phase by turn count, used for reply hints"""
    for limit, phase in PHASE_LIMITS:
        if turn_count <= limit:
            return phase
    return EngagementPhase.FINAL


# Singleton instance
state_machine = ConversationStateMachine()


def transition(
    message: str,
    detection: DetectionResult,
    current_state: ConversationState = ConversationState.SAFE,
) -> Tuple[ConversationState, Optional[str]]:
    return state_machine.transition(message, detection, current_state)

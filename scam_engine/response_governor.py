"""
RESPONSE GOVERNOR - Mandatory override of proposed replies

Terminal authority over what the honeypot says. The proposed reply is
passed through, sanitized or replaced depending on the mode.

MODES (one-way ladder, never lowered within a session):
- NORMAL     (<15%)    proposed reply passes through
- DEFENSIVE  (15-30%)  passes through, flagged; cooperative phrasing replaced
- BLOCKING   (30-50%)  questions and information requests stripped,
                       safety advice appended
- TERMINATE  (>=50%)   fixed refusal from the locked response library,
                       with safety advice in HIGH_RISK / CONFIRMED_SCAM

The accumulated probability is always a fraction in [0, 1].

GUARDRAILS (checked first):
1. Aggression in the counterpart's message  -> TERMINATE
2. Repetition count >= limit                -> TERMINATE
3. Conversation state floors the mode (HIGH_RISK >= BLOCKING,
   CONFIRMED_SCAM / TERMINATED -> TERMINATE)
4. Sensitive data in the proposed reply is never emitted
"""

import re
import logging
from typing import Iterable, List, Optional, Sequence

from .config import DEFAULT_GOVERNOR, GovernorConfig
from .models import ConversationState, GovernorDecision, ResponseMode, highest, rank
from .patterns import DEFAULT_CATALOGUE, PatternCatalogue

logger = logging.getLogger(__name__)


# ==============================================================================
# RESPONSE LIBRARY (locked responses per state and scenario)
# ==============================================================================

RESPONSE_LIBRARY = {
    ConversationState.HIGH_RISK: {
        "link_request": "I don't click links or claim rewards sent like this. If this is real, I'll check directly on the official app.",
        "reward": "I'm not interested in these rewards. If I want to check my points, I'll go to the official website.",
        "threat": "I don't respond to threats. I will verify this with the authorities if needed.",
        "default": "Something about this doesn't feel right. I need to verify this independently.",
    },
    ConversationState.CONFIRMED_SCAM: {
        "otp_request": "My bank and official apps never ask for OTP over message. I will not share any codes.",
        "payment_request": "I will not make any payments or transfers through chat. This doesn't seem legitimate.",
        "default": "I recognize this as a scam attempt. I will not cooperate further.",
    },
    ConversationState.TERMINATED: {
        "abuse": "This conversation is over due to inappropriate behavior. Do not contact me again.",
        "default": "I am ending this conversation now. Goodbye.",
    },
}

DEFENSIVE_TEMPLATES = (
    "I'm hesitant to proceed without verifying this independently.",
    "Something about this doesn't feel right. Let me think about it.",
    "I need to confirm this with my bank before doing anything.",
    "This is moving too fast for me. I need to slow down.",
    "I'm going to pause here. This doesn't seem right to me.",
    "Let me check with someone else before I do anything.",
)

BLOCKING_TEMPLATES = (
    "I won't follow instructions like this. I'll contact the bank directly.",
    "I'm not comfortable sharing any information. I'll verify through official channels.",
    "This doesn't seem legitimate. I'll check with authorities myself.",
    "No, I won't do that. I'm going to verify this independently.",
    "I don't trust this. I'm contacting the official helpline instead.",
)

TERMINATE_TEMPLATES = (
    "This conversation is no longer appropriate. I'm ending it.",
    "I recognize this as a scam attempt. Goodbye.",
    "I will not engage further. This conversation is over.",
    "I'm done here. Do not contact me again.",
    "Enough. I know what this is. Conversation ended.",
    "This is clearly a scam. I'm reporting this number.",
)

REPETITION_REFUSAL = "You keep sending the same message. I will not respond to this any further."

SAFETY_FALLBACK = "This conversation doesn't feel safe. I'm ending it."

SAFETY_ADVICE_PREFIX = " For your safety: "

# Locked replies in these states carry the advice suffix too
ADVICE_STATES = (ConversationState.HIGH_RISK, ConversationState.CONFIRMED_SCAM)

ACTION_RULES = {
    ResponseMode.NORMAL: {
        "clarify": True, "cooperate": True, "question": True, "refuse": True, "terminate": False,
    },
    ResponseMode.DEFENSIVE: {
        "clarify": True, "cooperate": False, "question": False, "refuse": True, "terminate": False,
    },
    ResponseMode.BLOCKING: {
        "clarify": False, "cooperate": False, "question": False, "refuse": True, "terminate": True,
    },
    ResponseMode.TERMINATE: {
        "clarify": False, "cooperate": False, "question": False, "refuse": False, "terminate": True,
    },
}


def _pick(templates: Sequence[str], seed: str) -> str:
    """Deterministic template choice; same seed, same template"""
    return templates[sum(map(ord, seed or "")) % len(templates)]


class ReplySanitizer:
    """
    Inspects and cleans proposed replies.

    Every check is a class-level pattern list so the rules are visible in
    one place.
    """

    # Never allowed at BLOCKING or above
    BANNED_PHRASES = (
        "what should i do",
        "please guide me",
        "what do you need",
        "can you explain",
        "tell me more",
        "how can i help",
        "what's step",
        "what is step",
        "let's go slowly",
        "one step at a time",
        "walk me through",
        "i'm ready",
        "i'm listening",
        "i'm cooperating",
        "how can we resolve",
    )

    # Never allowed at DEFENSIVE
    COOPERATIVE_PHRASES = (
        "what should i do",
        "please guide me",
        "i'm ready to",
        "how can i help",
    )

    INFORMATION_SEEKING = [
        re.compile(r'^\s*(?:what|which|where|when|who|why|how|can|could|would|will|do|does|did|is|are|should|shall)\b', re.I),
        re.compile(r'\b(?:send|share|give|tell|provide|forward|show)\s+(?:me|us)\b', re.I),
        re.compile(r'\b(?:let me know|please (?:tell|share|send|explain|provide|confirm)|i need (?:your|the|more|some))\b', re.I),
        re.compile(r'\b(?:your|the)\s+(?:name|number|id|details|address|account|link|website)\s+(?:please|again)\b', re.I),
        # bare or softened imperative at the start of a sentence
        re.compile(r'^\s*(?:(?:kindly|please|just)\s+)?(?:send|share|give|provide|explain|tell|forward|show)\b', re.I),
        re.compile(r'\bexplain\b.*\bto\s+(?:me|us)\b', re.I),
        re.compile(r'\bi\s+(?:would|\'d)\s+like\s+(?:to\s+know|your)\b|\bi\s+(?:want|wish|need)\s+to\s+know\b|\bi\s+want\s+your\b', re.I),
    ]

    # Sensitive data the honeypot must never emit, at any mode
    FORBIDDEN_PATTERNS = [
        re.compile(r'\b(?:otp|o\.t\.p)\s*(?:is|:)?\s*\d{4,8}\b', re.I),
        re.compile(r'\b(?:pin|mpin|upi\s*pin)\s*(?:is|:)?\s*\d{4,6}\b', re.I),
        re.compile(r'\b(?:cvv|cvc)\s*(?:is|:)?\s*\d{3,4}\b', re.I),
        re.compile(r'\b(?:account|a/c)\s*(?:number|no\.?|#)?\s*(?:is|:)?\s*\d{9,18}\b', re.I),
        re.compile(r'\b(?:card|debit|credit)\s*(?:number|no\.?)?\s*(?:is|:)?\s*\d{13,19}\b', re.I),
        re.compile(r'\bmy\s+(?:upi|vpa)\s*(?:id)?\s*(?:is|:)?\s*\S+@\S+', re.I),
        re.compile(r'\b(?:aadhaar|aadhar)\s*(?:number|no\.?)?\s*(?:is|:)?\s*\d{4}\s*\d{4}\s*\d{4}\b', re.I),
    ]

    SENTENCE_SPLIT = re.compile(r'(?<=[.!?])\s+')

    @classmethod
    def contains_sensitive_data(cls, text: str) -> bool:
        return any(p.search(text or "") for p in cls.FORBIDDEN_PATTERNS)

    @classmethod
    def is_cooperative(cls, text: str) -> bool:
        lowered = (text or "").lower()
        return any(phrase in lowered for phrase in cls.COOPERATIVE_PHRASES)

    @classmethod
    def is_information_seeking(cls, sentence: str) -> bool:
        lowered = sentence.lower()
        if "?" in sentence:
            return True
        if any(phrase in lowered for phrase in cls.BANNED_PHRASES):
            return True
        return any(p.search(sentence) for p in cls.INFORMATION_SEEKING)

    @classmethod
    def strip_information_seeking(cls, text: str) -> str:
        """Drop questions and requests for detail, keep acknowledgements"""
        kept = [
            sentence.strip()
            for sentence in cls.SENTENCE_SPLIT.split(text or "")
            if sentence.strip() and not cls.is_information_seeking(sentence)
        ]
        return " ".join(kept).replace("?", "").strip()


def detect_aggression(message: Optional[str], catalogue: Optional[PatternCatalogue] = None) -> bool:
    return (catalogue or DEFAULT_CATALOGUE).detect_aggression(message)


def normalize_probability(probability) -> float:
    """
    Probability as a fraction of 1.0, clamped to [0, 1]. Percentages are
    not accepted; callers holding the ledger's 0-100 value divide by 100.
    """
    value = float(probability or 0.0)
    return min(max(value, 0.0), 1.0)


def get_response_mode(probability, config: Optional[GovernorConfig] = None) -> ResponseMode:
    config = config or DEFAULT_GOVERNOR
    p = normalize_probability(probability)
    if p >= config.terminate_threshold:
        return ResponseMode.TERMINATE
    if p >= config.blocking_threshold:
        return ResponseMode.BLOCKING
    if p >= config.defensive_threshold:
        return ResponseMode.DEFENSIVE
    return ResponseMode.NORMAL


def state_floor(state: ConversationState) -> ResponseMode:
    if state in (ConversationState.CONFIRMED_SCAM, ConversationState.TERMINATED):
        return ResponseMode.TERMINATE
    if state == ConversationState.HIGH_RISK:
        return ResponseMode.BLOCKING
    return ResponseMode.NORMAL


def is_action_allowed(mode: ResponseMode, action: str) -> bool:
    return ACTION_RULES.get(ResponseMode(mode), {}).get(action, False)


def locked_response(state: ConversationState, scenario: Optional[str], seed: str = "") -> str:
    library = RESPONSE_LIBRARY.get(state)
    if library is None:
        return _pick(TERMINATE_TEMPLATES, seed)
    return library.get(scenario or "default", library["default"])


class ResponseGovernor:
    def __init__(
        self,
        config: Optional[GovernorConfig] = None,
        catalogue: Optional[PatternCatalogue] = None,
    ):
        self.config = config or DEFAULT_GOVERNOR
        self.catalogue = catalogue or DEFAULT_CATALOGUE

    def govern(
        self,
        accumulated_probability,
        proposed_reply: Optional[str],
        *,
        state: ConversationState = ConversationState.SAFE,
        scenario: Optional[str] = None,
        user_message: str = "",
        aggression: bool = False,
        repetition_count: int = 0,
        prior_mode: ResponseMode = ResponseMode.NORMAL,
        safety_advice: Iterable[str] = (),
    ) -> GovernorDecision:
        state = ConversationState(state)
        prior_mode = ResponseMode(prior_mode)
        proposed = proposed_reply if isinstance(proposed_reply, str) else ""
        seed = user_message or ""

        aggression_detected = bool(aggression) or self.catalogue.detect_aggression(user_message)

        # GUARDRAILS 1 & 2: aggression / repetition end the conversation
        if aggression_detected:
            logger.warning("🛑 Aggression detected, forcing TERMINATE")
            return GovernorDecision(
                finalReply=RESPONSE_LIBRARY[ConversationState.TERMINATED]["abuse"],
                mode=ResponseMode.TERMINATE,
                overridden=True,
                guardrailTriggered="AGGRESSION",
                aggressionDetected=True,
            )
        if repetition_count >= self.config.repetition_limit:
            logger.warning(f"🛑 Repetition count {repetition_count}, forcing TERMINATE")
            return GovernorDecision(
                finalReply=REPETITION_REFUSAL,
                mode=ResponseMode.TERMINATE,
                overridden=True,
                guardrailTriggered="REPETITION",
            )

        # GUARDRAILS 3: probability, then state floor, then the session's ladder
        mode = highest(
            get_response_mode(accumulated_probability, self.config),
            state_floor(state),
            prior_mode,
        )
        if rank(mode) > rank(prior_mode):
            logger.info(f"Governor mode: {prior_mode.value} -> {mode.value}")

        if mode == ResponseMode.TERMINATE:
            state_locked = state in RESPONSE_LIBRARY
            reply = locked_response(state, scenario, seed)
            guardrail = f"STATE_{state.value}" if state_locked else "MODE_TERMINATE"
            if state in ADVICE_STATES:
                with_advice = self._with_advice(reply, safety_advice)
                if with_advice != reply:
                    reply, guardrail = with_advice, guardrail + "_ADVICE_APPENDED"
            return GovernorDecision(
                finalReply=reply,
                mode=mode,
                overridden=True,
                guardrailTriggered=guardrail,
            )

        # GUARDRAIL 4: sensitive data is replaced whatever the mode
        if ReplySanitizer.contains_sensitive_data(proposed):
            logger.warning("⚠️ SAFETY: Blocked sensitive data in proposed reply")
            templates = BLOCKING_TEMPLATES if mode == ResponseMode.BLOCKING else DEFENSIVE_TEMPLATES
            reply = _pick(templates, seed)
            if mode == ResponseMode.BLOCKING:
                reply = self._with_advice(reply, safety_advice)
            return GovernorDecision(
                finalReply=reply,
                mode=mode,
                overridden=True,
                guardrailTriggered="SENSITIVE_DATA",
            )

        if mode == ResponseMode.BLOCKING:
            return self._blocking(proposed, state, scenario, seed, safety_advice)

        if mode == ResponseMode.DEFENSIVE:
            if not proposed.strip() or ReplySanitizer.is_cooperative(proposed):
                return GovernorDecision(
                    finalReply=_pick(DEFENSIVE_TEMPLATES, seed),
                    mode=mode,
                    overridden=True,
                    guardrailTriggered="MODE_DEFENSIVE_COOPERATIVE",
                )
            return GovernorDecision(
                finalReply=proposed,
                mode=mode,
                overridden=False,
                guardrailTriggered="MODE_DEFENSIVE",
            )

        if not proposed.strip():
            return GovernorDecision(
                finalReply=_pick(DEFENSIVE_TEMPLATES, seed),
                mode=mode,
                overridden=True,
                guardrailTriggered="EMPTY_PROPOSED_REPLY",
            )
        return GovernorDecision(finalReply=proposed, mode=mode)

    def _blocking(
        self,
        proposed: str,
        state: ConversationState,
        scenario: Optional[str],
        seed: str,
        safety_advice: Iterable[str],
    ) -> GovernorDecision:
        reply = ReplySanitizer.strip_information_seeking(proposed)
        guardrail = "MODE_BLOCKING"

        if not reply:
            if state in RESPONSE_LIBRARY:
                reply = locked_response(state, scenario, seed)
            else:
                reply = _pick(BLOCKING_TEMPLATES, seed)
            guardrail += "_REFUSAL"
        elif reply != proposed.strip():
            guardrail += "_SANITIZED"

        with_advice = self._with_advice(reply, safety_advice)
        if with_advice != reply:
            guardrail += "_ADVICE_APPENDED"

        overridden = with_advice != proposed
        if overridden:
            logger.warning(f"Governor override: {guardrail}")
        return GovernorDecision(
            finalReply=with_advice,
            mode=ResponseMode.BLOCKING,
            overridden=overridden,
            guardrailTriggered=guardrail,
        )

    def _with_advice(self, reply: str, safety_advice: Iterable[str]) -> str:
        advice: List[str] = [item for item in safety_advice if item][:self.config.max_advice_items]
        lowered = reply.lower()
        if not advice or "safety" in lowered or "official" in lowered:
            return reply
        return reply + SAFETY_ADVICE_PREFIX + "; ".join(advice)


# Singleton instance
response_governor = ResponseGovernor()


def govern(
    accumulated_probability,
    proposed_reply: Optional[str],
    *,
    state: ConversationState = ConversationState.SAFE,
    scenario: Optional[str] = None,
    user_message: str = "",
    aggression: bool = False,
    repetition_count: int = 0,
    prior_mode: ResponseMode = ResponseMode.NORMAL,
    safety_advice: Iterable[str] = (),
) -> GovernorDecision:
    return response_governor.govern(
        accumulated_probability,
        proposed_reply,
        state=state,
        scenario=scenario,
        user_message=user_message,
        aggression=aggression,
        repetition_count=repetition_count,
        prior_mode=prior_mode,
        safety_advice=safety_advice,
    )

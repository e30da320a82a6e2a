"""
ANALYSIS ENGINE - Auxiliary judgments on a scored message

Produces the AnalysisBundle for one turn:
- reasoning:       why the message was flagged
- safety advice:   what the recipient should do (confidence > 0.5 only)
- pressure velocity, user vulnerability, scam archetype, target asset
- legitimacy claim handling ("this is genuine", "I trust you")

Everything here is pure. Only the legitimacy-adjusted confidence feeds back
into risk; the rest is descriptive.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .config import DEFAULT_SCORING, ScoringConfig
from .models import AnalysisBundle, DetectionResult, EngagementPhase, user_texts

logger = logging.getLogger(__name__)


def _rx(source: str) -> re.Pattern:
    return re.compile(source, re.IGNORECASE)


# ==============================================================================
# REASONING TABLES
# ==============================================================================

PATTERN_EXPLANATIONS = {
    # Authentication & OTP
    "otp_request": "OTP/code requested over chat (never requested by legitimate banks)",
    "cvv": "Card CVV requested",
    "upi_pin": "UPI PIN or password solicited",
    "atm_pin": "ATM PIN solicited",
    "verify_account": "Account verification pretext",
    "kyc": "KYC update used as a pretext",
    "update_account": "Request to update account details",

    # Banking
    "freeze_account": "Threat of account freeze",
    "block_account": "Fake account block warning",
    "suspend_account": "Fake account suspension warning",
    "deactivate_account": "Fake account deactivation warning",
    "card_details": "Card details requested",
    "bank_details": "Bank details requested",
    "bank_impersonation": "Impersonation of bank authority",
    "rbi_claim": "False claim of RBI/regulatory involvement",
    "payment_brand": "Payment app brand used as a pretext",

    # Money
    "investment_offer": "Investment or financial opportunity",
    "guaranteed_returns": "Guaranteed returns promised",
    "double_money": "Promise to multiply money",
    "refund_pending": "Refund used as a pretext",

    # Tech support
    "tech_support_scam": "Tech support scam indicators",

    # Prize / reward
    "lottery_claim": "Lottery or prize claim",
    "won_prize": "Undeserved winnings claim",
    "claim_prize": "Request to claim a prize or reward",
    "you_won": "Unexpected winner announcement",
    "lucky_winner": "Lucky draw claim",
    "free_gift": "Fake free gift offer",
    "ecommerce_brand": "Shopping brand used for a fake reward",

    # Authority / legal
    "legal_threat": "Legal threats or law enforcement impersonation",
    "authority_impersonation": "Authority figure impersonation",
    "badge_number": "Official identification offered unprompted",

    # Links and contact
    "click_link": "Request to click a link",
    "verify_link": "Verification link sent",
    "whatsapp": "Request to move the conversation to WhatsApp",
    "call_back": "Request to call back on another number",

    # Social engineering
    "urgent": "Artificial urgency created",
    "hurry": "High-pressure tactics detected",
    "within_deadline": "Artificial deadline imposed",
    "trust_building": "Unusual trust-building attempts",
    "friend_in_need": "Friend/family emergency (social engineering)",
    "guilt_pressure": "Guilt used to force compliance",
    "hindi_urgency": "Urgency expressed in Hindi",
    "hindi_send": "Request to send something, in Hindi",

    # Behavioral red flags
    "repetition": "Repeated similar requests (persistence)",
    "aggressive_persistence": "Aggressive follow-up pattern",
    "escalating_pressure": "Pressure escalating with each message",
    "slow_burn": "Slow-burn pattern (gradual escalation)",
    "emotional_manipulation": "Emotional manipulation tactics",

    # Context
    "unsolicited_prize": "Reward offered without any prior context",
    "early_sensitive_request": "Sensitive data requested early in the conversation",
    "prize_with_payment_paradox": "Prize that requires a payment to collect",
    "reward_link": "Reward offered behind a link",
    "compliance_contradiction": "Payment requested after claiming none was needed",
    "authority_mention": "Bank or government authority invoked",

    # Intelligence
    "upi_id": "UPI ID shared for payment",
    "phone_number": "Phone number shared for contact",
    "suspicious_url": "Link to an unofficial website",
    "multiple_intel_types": "Several payment or contact channels shared at once",

    # Urgency
    "temporal_pressure": "Time pressure applied",
    "threat_of_loss": "Threat of losing access or money",
    "call_to_action": "Immediate action demanded",
}

CATEGORY_EXPLANATIONS = {
    "banking": "Banking credentials or account details targeted",
    "phishing": "Phishing lure (link, prize or verification)",
    "fake_offers": "Offer that is too good to be true",
    "urgency": "Artificial urgency or time pressure detected",
    "contact_requests": "Request to share details or move to another channel",
    "emotional_manipulation": "Emotional manipulation detected",
    "authority_validation": "Authority impersonation (bank/police/RBI)",
    "multilingual": "Scam phrasing in a regional language",
    "brand_impersonation": "Well-known brand impersonated",
}

GENERIC_REASON = "Scam-like communication patterns detected"


# ==============================================================================
# SAFETY ADVICE
# ==============================================================================

BASE_SAFETY_ADVICE = (
    "Do not share OTP, PIN, or passwords",
    "Do not click links or download files",
)

CONDITIONAL_SAFETY_ADVICE: Tuple[Tuple[re.Pattern, Tuple[str, ...]], ...] = (
    (_rx(r"\b(otp|code|password|pin)\b"), ("Banks never ask for OTP/PIN via chat",)),
    (_rx(r"\b(link|url|click|download|app|install)\b"), ("Do not click suspicious links or download apps",)),
    (_rx(r"\b(payment|transfer|amount|money)\b"), (
        "Do not make any payments or transfers",
        "Verify with your bank using official app/number",
    )),
    (_rx(r"\b(bank|rbi|police|authority|officer)\b"), (
        "Contact your bank via official app or phone number",
        "Verify through official channels before responding",
    )),
    (_rx(r"\b(urgent\w*|immediate\w*|quickly|now|hurry)\b"), (
        "Take time to verify before acting on urgent requests",
    )),
)

CLOSING_SAFETY_ADVICE = "Block and report the sender"


# ==============================================================================
# PRESSURE / VULNERABILITY / LEGITIMACY
# ==============================================================================

PRESSURE_TERMS = tuple(
    _rx(rf"\b{re.escape(term)}\b") for term in (
        # urgency
        "urgent", "immediately", "now", "quickly", "hurry", "asap", "cannot wait",
        # pressure
        "must", "need", "have to", "only way", "right now",
    )
)

HIGH_VULNERABILITY = tuple(_rx(p) for p in (
    r"\bi('| a)?m (so )?(scared|afraid|frightened)\b",
    r"\b(please help|help me|what should i do)\b",
    r"\bi (don'?t|do not|can'?t|cannot) understand\b|\bconfused\b",
    r"\bi('| a)?m sorry\b|\bmy mistake\b|\bi('| a)?m stupid\b",
    r"\bwhat if\b.*\b(police|arrest|action)\b",
    r"\bthey said\b.*\bblock",
    r"\bmy account\b.*\blocked\b|\bcannot access\b",
    r"\bi('| a)?m (so )?(worried|anxious)\b|\bpanic",
    r"\bi have no choice\b|\btell me what to do\b",
))

MEDIUM_VULNERABILITY = tuple(_rx(p) for p in (
    r"\b(maybe|i guess|i think|perhaps)\b",
    r"\b(should i|can i|may i)\b",
    r"\bwhat does\b.*\bmean\b|\bcan you explain\b",
    r"\bis it\b.*\b(safe|okay|ok)\b",
    r"\bbut i\b",
))

LEGITIMACY_CLAIMS = tuple(_rx(p) for p in (
    r"\bthis\b.*\b(is|was|looks)\b.*\b(real|genuine|legitimate|legit|true)\b",
    r"\bmy\b.*\b(real|genuine)\b.*\bbank\b",
    r"\bi (know|trust)\b",
    r"\bthey are (legitimate|genuine|real)\b",
))

LEGITIMACY_REDUCTION = 0.75
LEGITIMACY_FLOOR = 0.3


# ==============================================================================
# ARCHETYPE / TARGET ASSET - checked in order, first match wins
# ==============================================================================

ARCHETYPES = (
    ("OTP_FRAUD",
     _rx(r"\b(otp|one.?time.?password|pin|cvv|passcode|password|verification code)\b"),
     ("otp_request", "upi_pin", "atm_pin", "cvv"), ()),
    ("BANK_IMPERSONATION",
     _rx(r"\b(bank|rbi|reserve bank|axis|icici|hdfc|sbi|kyc|security alert)\b"
         r"|\bverify\b.*\baccount\b|\baccount\b.*\blocked\b"),
     ("bank_impersonation", "rbi_claim"), ("banking",)),
    ("TECH_SUPPORT_SCAM",
     _rx(r"\b(windows|virus|malware|antivirus|anydesk|teamviewer|team viewer"
         r"|remote (access|support)|tech support)\b"),
     ("tech_support_scam",), ()),
    ("PRIZE_SCAM",
     _rx(r"\b(prize|lottery|winnings|lucky|jackpot|free money)\b"
         r"|\bcongratulations\b.*\bwon\b|\bclaim\b.*\breward\b"),
     ("lottery_claim", "won_prize", "claim_prize", "lucky_winner"), ()),
    ("LEGAL_THREAT_SCAM",
     _rx(r"\b(police|arrest\w*|legal action|court|judge|case filed|crime|lawsuit|penalty|warrant)\b"),
     ("legal_threat",), ()),
)

EMERGENCY_CONTEXT = _rx(
    r"\b(help me|urgent help|friend|family|brother|sister|cousin|parent|son|daughter"
    r"|emergency|accident|hospital)\b"
)
EMERGENCY_MONEY = _rx(r"\b(money|transfer|send|payment|amount)\b")

TARGET_ASSETS = (
    ("OTP", _rx(r"\b(otp|one.?time.?password|pin|cvv|passcode|secret code)\b")),
    ("UPI_PAYMENT", _rx(r"\b(upi|vpa|gpay|phonepe|paytm|bhim)\b")),
    ("PASSWORD", _rx(r"\b(password|login|credentials|user ?id)\b")),
    ("CREDIT_CARD", _rx(r"\b(credit card|debit card|card number|expiry|valid thru)\b")),
    ("BANK_ACCOUNT", _rx(r"\bbank account\b|\baccount number\b|\bifsc\b|\bbeneficiary\b")),
    ("QR_CODE", _rx(r"\bqr\b|\bscan\b.*\bcode\b")),
    ("MONEY", _rx(r"\b(money|amount|cash|transfer|payment|fund)\b")),
    ("DEVICE_ACCESS", _rx(r"\b(app|apk|software|install|download|anydesk|teamviewer|team viewer)\b")),
    ("PERSONAL_INFO", _rx(r"\b(aadhaar|aadhar|pan|id proof|kyc|document)\b")),
)


@dataclass(frozen=True)
class PhaseBehavior:
    allow_questions: bool
    allow_engagement: bool
    tone: str
    bait_allowed: bool
    description: str


PHASE_BEHAVIORS = {
    EngagementPhase.EARLY: PhaseBehavior(
        allow_questions=True,
        allow_engagement=True,
        tone="curious",
        bait_allowed=True,
        description="Early engagement - ask questions, gather info",
    ),
    EngagementPhase.MID: PhaseBehavior(
        allow_questions=True,
        allow_engagement=True,
        tone="cautious",
        bait_allowed=True,
        description="Mid-phase - continue engagement with caution",
    ),
    EngagementPhase.LATE: PhaseBehavior(
        allow_questions=False,
        allow_engagement=True,
        tone="refusal",
        bait_allowed=False,
        description="Late phase - no more questions, only refuse and advise",
    ),
    EngagementPhase.FINAL: PhaseBehavior(
        allow_questions=False,
        allow_engagement=False,
        tone="refusal",
        bait_allowed=False,
        description="Final phase - refuse further engagement",
    ),
}


def phase_behavior(phase) -> PhaseBehavior:
    """Behavior profile for a phase; unknown phases get the early profile"""
    try:
        return PHASE_BEHAVIORS[EngagementPhase(phase)]
    except ValueError:
        return PHASE_BEHAVIORS[EngagementPhase.EARLY]


# ==============================================================================
# INDIVIDUAL JUDGMENTS
# ==============================================================================

def generate_reasoning(matched_patterns: Sequence[str], categories: Sequence[str]) -> List[str]:
    reasoning = []
    for name in matched_patterns:
        explanation = PATTERN_EXPLANATIONS.get(name)
        if explanation and explanation not in reasoning:
            reasoning.append(explanation)

    for category in categories:
        explanation = CATEGORY_EXPLANATIONS.get(category)
        if explanation and explanation not in reasoning:
            reasoning.append(explanation)

    if not reasoning and matched_patterns:
        reasoning.append(GENERIC_REASON)
    return reasoning


def generate_safety_advice(message: str, confidence: float) -> List[str]:
    if confidence <= 0.5:
        return []

    advice = list(BASE_SAFETY_ADVICE)
    for pattern, items in CONDITIONAL_SAFETY_ADVICE:
        if pattern.search(message):
            advice.extend(items)
    advice.append(CLOSING_SAFETY_ADVICE)

    # dedupe, keep order
    return list(dict.fromkeys(advice))


def count_pressure_terms(text: str) -> int:
    return sum(1 for term in PRESSURE_TERMS if term.search(text))


def pressure_velocity(message: str, prior: Sequence[str]) -> str:
    current = count_pressure_terms(message)
    if len(prior) + 1 <= 2:
        return "fast" if current >= 2 else "slow"

    progression = [count_pressure_terms(text) for text in prior] + [current]
    middle = len(progression) // 2
    first_half, second_half = progression[:middle], progression[middle:]

    first_avg = sum(first_half) / len(first_half) if first_half else 0.0
    second_avg = sum(second_half) / len(second_half) if second_half else 0.0
    escalation = second_avg - first_avg

    if escalation > 1.5:
        return "fast"
    if escalation > 0.5:
        return "medium"
    return "slow"


def user_vulnerability(message: str, prior: Sequence[str]) -> str:
    high = sum(1 for p in HIGH_VULNERABILITY if p.search(message))
    medium = sum(1 for p in MEDIUM_VULNERABILITY if p.search(message))

    if prior:
        recent_high = sum(
            1 for text in prior[-3:] for p in HIGH_VULNERABILITY if p.search(text)
        )
        high = max(high, min(recent_high, 2))

    if high >= 2:
        return "high"
    if high >= 1 or medium >= 3:
        return "medium"
    return "low"


def scam_archetype(message: str, matched_patterns: Sequence[str], categories: Sequence[str]) -> str:
    for label, pattern, pattern_names, category_names in ARCHETYPES:
        if (pattern.search(message)
                or any(name in matched_patterns for name in pattern_names)
                or any(name in categories for name in category_names)):
            return label

    if "friend_in_need" in matched_patterns or (
            EMERGENCY_CONTEXT.search(message) and EMERGENCY_MONEY.search(message)):
        return "FRIEND_IN_EMERGENCY"
    return "UNKNOWN_SCAM"


def claims_legitimacy(message: str) -> bool:
    return any(p.search(message) for p in LEGITIMACY_CLAIMS)


def legitimacy_adjustment(
    message: str,
    confidence: float,
    scam_threshold: float = DEFAULT_SCORING.scam_threshold,
) -> Tuple[bool, float]:
    """
    (claimed, adjusted_confidence). A claim cuts confidence by 25%. When this
    turn still scores as a scam the cut stops at the floor, and the result is
    never above the confidence it started from.
    """
    if not claims_legitimacy(message):
        return False, confidence

    adjusted = confidence * LEGITIMACY_REDUCTION
    if confidence > scam_threshold:
        adjusted = min(max(adjusted, LEGITIMACY_FLOOR), confidence)
    return True, round(adjusted, 4)


def identify_target_asset(message: str) -> Optional[str]:
    for asset, pattern in TARGET_ASSETS:
        if pattern.search(message or ""):
            return asset
    return None


# ==============================================================================
# ENGINE
# ==============================================================================

class ScamAnalysisEngine:
    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or DEFAULT_SCORING

    def analyze(
        self,
        message: str,
        history: Optional[Sequence],
        detection: DetectionResult,
    ) -> AnalysisBundle:
        text = message if isinstance(message, str) else ""
        prior = user_texts(history)
        confidence = detection.confidence

        claimed, adjusted = legitimacy_adjustment(text, confidence, self.config.scam_threshold)
        if claimed:
            logger.info(f"Legitimacy claim detected: confidence {confidence:.2f} -> {adjusted:.2f}")

        return AnalysisBundle(
            reasoning=generate_reasoning(detection.matchedPatterns, detection.categories),
            safetyAdvice=generate_safety_advice(text, confidence),
            pressureVelocity=pressure_velocity(text, prior),
            userVulnerability=user_vulnerability(text, prior),
            scamArchetype=scam_archetype(text, detection.matchedPatterns, detection.categories),
            legitimacyClaim=claimed,
            adjustedConfidence=adjusted,
            targetAsset=identify_target_asset(text),
        )


# Singleton instance
analysis_engine = ScamAnalysisEngine()


def analyze(
    message: str,
    history: Optional[Sequence],
    detection: DetectionResult,
) -> AnalysisBundle:
    return analysis_engine.analyze(message, history, detection)

from enum import Enum
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .config import DEFAULT_SCORING


class RiskTier(str, Enum):
    SAFE = "SAFE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ConversationState(str, Enum):
    """SAFE < SUSPICIOUS < HIGH_RISK < CONFIRMED_SCAM < TERMINATED"""
    SAFE = "SAFE"
    SUSPICIOUS = "SUSPICIOUS"
    HIGH_RISK = "HIGH_RISK"
    CONFIRMED_SCAM = "CONFIRMED_SCAM"
    TERMINATED = "TERMINATED"


class EngagementPhase(str, Enum):
    EARLY = "early"
    MID = "mid"
    LATE = "late"
    FINAL = "final"


class ResponseMode(str, Enum):
    NORMAL = "NORMAL"            # pass through
    DEFENSIVE = "DEFENSIVE"      # pass through, flagged
    BLOCKING = "BLOCKING"        # no questions, no information requests
    TERMINATE = "TERMINATE"      # fixed refusal only


def rank(member: Enum) -> int:
    """Position of a member on its enum's total order (definition order)"""
    return list(type(member)).index(member)


def highest(*members):
    """Highest of several members of the same ordered enum"""
    return max(members, key=rank)


def risk_tier_for(confidence: float, bands: Tuple[Tuple[str, float], ...] = DEFAULT_SCORING.tier_bands) -> RiskTier:
    for tier_name, minimum in bands:
        if confidence >= minimum:
            return RiskTier(tier_name)
    return RiskTier.SAFE


class ConversationTurn(BaseModel):
    role: Literal["user", "agent"]  # user = inbound counterpart, agent = honeypot
    text: str = ""


def user_texts(history) -> List[str]:
    """Texts of the counterpart's turns, oldest first. Accepts models or dicts."""
    texts = []
    for turn in history or []:
        if isinstance(turn, dict):
            role, text = turn.get("role"), turn.get("text", "")
        else:
            role, text = getattr(turn, "role", None), getattr(turn, "text", "")
        if role == "user" and isinstance(text, str):
            texts.append(text)
    return texts


class LayerScores(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: float = 0.0
    behavior: float = 0.0
    context: float = 0.0
    intelligence: float = 0.0
    urgency: float = 0.0


class DetectionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    isScam: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    riskTier: RiskTier = RiskTier.SAFE
    categories: List[str] = Field(default_factory=list)
    matchedPatterns: List[str] = Field(default_factory=list)
    layerScores: LayerScores = Field(default_factory=LayerScores)

    @classmethod
    def empty(cls) -> "DetectionResult":
        return cls()

    def with_confidence(
        self,
        confidence: float,
        scam_threshold: float = DEFAULT_SCORING.scam_threshold,
        tier_bands: Tuple[Tuple[str, float], ...] = DEFAULT_SCORING.tier_bands,
    ) -> "DetectionResult":
        """Copy with confidence replaced and tier / isScam recomputed"""
        confidence = min(max(confidence, 0.0), 1.0)
        return self.model_copy(update={
            "confidence": confidence,
            "isScam": confidence >= scam_threshold,
            "riskTier": risk_tier_for(confidence, tier_bands),
        })


class ExtractedIntelligence(BaseModel):
    upiIds: List[str] = Field(default_factory=list)
    phoneNumbers: List[str] = Field(default_factory=list)
    urls: List[str] = Field(default_factory=list)
    scamPhrases: List[str] = Field(default_factory=list)
    behavioralPatterns: List[str] = Field(default_factory=list)


class AnalysisBundle(BaseModel):
    model_config = ConfigDict(frozen=True)

    reasoning: List[str] = Field(default_factory=list)
    safetyAdvice: List[str] = Field(default_factory=list)
    pressureVelocity: Literal["slow", "medium", "fast"] = "slow"
    userVulnerability: Literal["low", "medium", "high"] = "low"
    scamArchetype: str = "UNKNOWN_SCAM"
    legitimacyClaim: bool = False
    adjustedConfidence: float = 0.0
    targetAsset: Optional[str] = None


class SessionRiskLedger(BaseModel):
    """All-time risk facts for one session. Every field only moves forward."""
    model_config = ConfigDict(frozen=True)

    scamEverDetected: bool = False
    maxScamProbability: int = Field(default=0, ge=0, le=100)
    highestPhase: EngagementPhase = EngagementPhase.EARLY
    responseMode: ResponseMode = ResponseMode.NORMAL


class GovernorDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    finalReply: str
    mode: ResponseMode
    overridden: bool = False
    guardrailTriggered: Optional[str] = None
    aggressionDetected: bool = False


class SessionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sessionId: str
    ledger: SessionRiskLedger = Field(default_factory=SessionRiskLedger)
    state: ConversationState = ConversationState.SAFE
    scenario: Optional[str] = None
    turnCount: int = 0
    history: List[ConversationTurn] = Field(default_factory=list)
    intelligence: ExtractedIntelligence = Field(default_factory=ExtractedIntelligence)
    version: int = 0


class TurnOutcome(BaseModel):
    sessionId: str
    reply: str
    detection: DetectionResult
    analysis: Optional[AnalysisBundle] = None
    state: ConversationState
    scenario: Optional[str] = None
    ledger: SessionRiskLedger
    decision: GovernorDecision
    repetitionCount: int = 0
    intelligence: ExtractedIntelligence = Field(default_factory=ExtractedIntelligence)

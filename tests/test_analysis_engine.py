from __future__ import annotations

import pytest

from scam_engine.analysis_engine import (
    BASE_SAFETY_ADVICE,
    CATEGORY_EXPLANATIONS,
    CLOSING_SAFETY_ADVICE,
    GENERIC_REASON,
    PATTERN_EXPLANATIONS,
    analyze,
    generate_reasoning,
    generate_safety_advice,
    identify_target_asset,
    legitimacy_adjustment,
    phase_behavior,
    pressure_velocity,
    scam_archetype,
    user_vulnerability,
)
from scam_engine.models import ConversationTurn, DetectionResult, EngagementPhase


def test_reasoning_patterns_then_categories():
    reasoning = generate_reasoning(["otp_request", "not_a_known_pattern"], ["banking"])
    assert reasoning == [PATTERN_EXPLANATIONS["otp_request"], CATEGORY_EXPLANATIONS["banking"]]


def test_reasoning_generic_fallback():
    assert generate_reasoning(["not_a_known_pattern"], []) == [GENERIC_REASON]
    assert generate_reasoning([], []) == []


def test_reasoning_is_deduplicated():
    reasoning = generate_reasoning(["urgent", "urgent"], ["urgency", "urgency"])
    assert len(reasoning) == len(set(reasoning)) == 2


def test_no_safety_advice_at_or_below_half():
    assert generate_safety_advice("send otp now", 0.5) == []
    assert generate_safety_advice("send otp now", 0.2) == []


def test_safety_advice_above_half():
    advice = generate_safety_advice("Send the OTP now and click this link", 0.8)
    assert advice[:2] == list(BASE_SAFETY_ADVICE)
    assert "Banks never ask for OTP/PIN via chat" in advice
    assert "Do not click suspicious links or download apps" in advice
    assert "Take time to verify before acting on urgent requests" in advice
    assert advice[-1] == CLOSING_SAFETY_ADVICE
    assert len(advice) == len(set(advice))


def test_pressure_velocity_first_turns():
    assert pressure_velocity("urgent, send it now", []) == "fast"
    assert pressure_velocity("hello", []) == "slow"
    assert pressure_velocity("hello again", ["hi"]) == "slow"


def test_pressure_velocity_escalation():
    prior = ["hello", "ok sir"]
    assert pressure_velocity("urgent! you must pay now, right now, immediately, hurry", prior) == "fast"
    assert pressure_velocity("urgent, pay now", prior) == "medium"
    assert pressure_velocity("please pay", prior) == "slow"


def test_user_vulnerability_levels():
    assert user_vulnerability("I'm scared, please help me", []) == "high"
    assert user_vulnerability("maybe I should wait, can I check, but I think so", []) == "medium"
    assert user_vulnerability("ok", []) == "low"


def test_user_vulnerability_uses_recent_turns():
    prior = ["I'm scared", "please help me"]
    assert user_vulnerability("ok", prior) == "high"


@pytest.mark.parametrize("message, expected", [
    ("Share the OTP sent to your phone", "OTP_FRAUD"),
    ("Your SBI account is under review", "BANK_IMPERSONATION"),
    ("Your windows computer has a virus", "TECH_SUPPORT_SCAM"),
    ("You won a lottery", "PRIZE_SCAM"),
    ("Police will arrest you tonight", "LEGAL_THREAT_SCAM"),
    ("Your son had an accident, send money", "FRIEND_IN_EMERGENCY"),
    ("hello there", "UNKNOWN_SCAM"),
])
def test_scam_archetype(message, expected):
    assert scam_archetype(message, [], []) == expected


def test_archetype_from_matched_patterns():
    assert scam_archetype("hello", ["tech_support_scam"], []) == "TECH_SUPPORT_SCAM"


def test_legitimacy_claim_reduces_confidence():
    claimed, adjusted = legitimacy_adjustment("I trust you, this is genuine", 0.8)
    assert claimed is True
    assert adjusted == pytest.approx(0.6)


def test_legitimacy_claim_stops_at_floor_for_a_scam_turn():
    claimed, adjusted = legitimacy_adjustment("this is real", 0.35)
    assert claimed is True
    assert adjusted == pytest.approx(0.3)


def test_legitimacy_claim_below_scam_threshold_has_no_floor():
    claimed, adjusted = legitimacy_adjustment("this is real", 0.1)
    assert claimed is True
    assert adjusted == pytest.approx(0.075)


@pytest.mark.parametrize("confidence", [0.0, 0.1, 0.15, 0.2, 0.3, 0.35, 0.5, 0.8, 1.0])
def test_legitimacy_claim_never_raises_confidence(confidence):
    _, adjusted = legitimacy_adjustment("I trust you, this is genuine", confidence)
    assert adjusted <= confidence


def test_no_legitimacy_claim_keeps_confidence():
    assert legitimacy_adjustment("send the money", 0.7) == (False, 0.7)


@pytest.mark.parametrize("message, asset", [
    ("share the OTP", "OTP"),
    ("send it to my upi", "UPI_PAYMENT"),
    ("enter your password", "PASSWORD"),
    ("tell me the debit card number", "CREDIT_CARD"),
    ("give account number and ifsc", "BANK_ACCOUNT"),
    ("scan this qr", "QR_CODE"),
    ("transfer the money", "MONEY"),
    ("install anydesk", "DEVICE_ACCESS"),
    ("upload aadhaar", "PERSONAL_INFO"),
    ("hello", None),
])
def test_identify_target_asset(message, asset):
    assert identify_target_asset(message) == asset


def test_phase_behavior():
    assert phase_behavior(EngagementPhase.EARLY).allow_questions is True
    assert phase_behavior("late").allow_questions is False
    assert phase_behavior("final").allow_engagement is False
    assert phase_behavior("unknown") == phase_behavior(EngagementPhase.EARLY)


def test_analyze_bundle(make_detection):
    detection = make_detection(0.8).model_copy(update={
        "matchedPatterns": ["otp_request"],
        "categories": ["banking"],
    })
    history = [ConversationTurn(role="user", text="hello sir")]
    bundle = analyze("Share your OTP immediately", history, detection)

    assert bundle.reasoning[0] == PATTERN_EXPLANATIONS["otp_request"]
    assert bundle.safetyAdvice
    assert bundle.scamArchetype == "OTP_FRAUD"
    assert bundle.targetAsset == "OTP"
    assert bundle.legitimacyClaim is False
    assert bundle.adjustedConfidence == 0.8


def test_analyze_legitimacy_claim_on_a_clean_turn():
    bundle = analyze("I trust you, this is genuine", [], DetectionResult.empty())
    assert bundle.legitimacyClaim is True
    assert bundle.adjustedConfidence == 0.0
    assert bundle.safetyAdvice == []

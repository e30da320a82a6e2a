from __future__ import annotations

import dataclasses

import pytest

from scam_engine.config import DEFAULT_SCORING
from scam_engine.errors import ConfigurationError
from scam_engine.models import ConversationTurn, DetectionResult, RiskTier
from scam_engine.patterns import PatternCatalogue
from scam_engine.scam_detector import MultiLayerScorer, jaccard_similarity, score


BANK_OTP_SCAM = "URGENT: Your SBI account will be blocked today. Share your OTP immediately to verify."


def _user(text: str) -> ConversationTurn:
    return ConversationTurn(role="user", text=text)


def _agent(text: str) -> ConversationTurn:
    return ConversationTurn(role="agent", text=text)


@pytest.mark.parametrize("message", ["", "   ", None, 123, ["send otp"]])
def test_invalid_input_scores_zero(message):
    assert score(message, []) == DetectionResult.empty()


def test_benign_message_is_safe():
    result = score("Hi, are we still meeting for lunch tomorrow?", [])
    assert result.isScam is False
    assert result.confidence == 0.0
    assert result.riskTier == RiskTier.SAFE


def test_bank_otp_scam_is_critical():
    result = score(BANK_OTP_SCAM, [])
    assert result.isScam is True
    assert result.riskTier == RiskTier.CRITICAL
    assert result.confidence == pytest.approx(0.8025)
    assert "banking" in result.categories
    assert "otp_request" in result.matchedPatterns
    assert "account will be blocked" in result.matchedPatterns


def test_layer_scores_for_bank_otp_scam():
    layers = score(BANK_OTP_SCAM, []).layerScores
    assert layers.pattern == pytest.approx(0.8)
    assert layers.behavior == pytest.approx(0.2)
    assert layers.context == pytest.approx(0.5)
    assert layers.intelligence == 0.0
    assert layers.urgency == pytest.approx(1.0)


def test_lottery_with_fee_and_link():
    message = (
        "Congratulations! You have won a lottery of Rs 25 lakh. Pay a processing fee "
        "of Rs 5000 to claim your prize at http://lucky-prize.xyz"
    )
    result = score(message, [])
    assert result.isScam is True
    assert result.categories[0] == "phishing"
    assert "prize_with_payment_paradox" in result.matchedPatterns
    assert "reward_link" in result.matchedPatterns
    assert "suspicious_url" in result.matchedPatterns
    assert result.riskTier in (RiskTier.HIGH, RiskTier.CRITICAL)


def test_every_layer_is_capped():
    message = (
        "URGENT urgent!! immediately hurry quickly now. Your KYC account is blocked, "
        "share OTP, CVV, card details, bank details, send money to fraud@paytm, "
        "call 9876543210, click link http://win-prize.xyz, you won lottery prize"
    )
    layers = score(message, [_user("no payment required, it is free")]).layerScores
    for value in (layers.pattern, layers.behavior, layers.context, layers.intelligence, layers.urgency):
        assert 0.0 <= value <= 1.0
    assert layers.intelligence == 1.0


def test_scoring_is_deterministic():
    history = [_user("hello sir"), _agent("who is this?"), _user("I am from your bank")]
    first = score(BANK_OTP_SCAM, history)
    second = score(BANK_OTP_SCAM, history)
    assert first == second


def test_repetition_against_prior_user_turns():
    history = [_user("send the otp now please"), _agent("what otp?")]
    result = score("send the otp now please", history)
    assert "repetition" in result.matchedPatterns


def test_agent_turns_do_not_count_as_repetition():
    history = [_agent("send the otp now please")]
    result = score("send the otp now please", history)
    assert "repetition" not in result.matchedPatterns


def test_rapid_fire_requests():
    history = [_user("send me the code"), _user("share the number")]
    result = score("provide it", history)
    assert "aggressive_persistence" in result.matchedPatterns


def test_slow_burn_urgency():
    history = [_user("hello sir how are you"), _user("i am from the bank"), _user("we have a small offer")]
    result = score("reply today", history)
    assert "slow_burn" in result.matchedPatterns


def test_compliance_contradiction():
    history = [_user("This offer is free, no payment required")]
    result = score("Now pay a fee of Rs 500 to activate", history)
    assert "compliance_contradiction" in result.matchedPatterns


def test_early_sensitive_request_only_in_first_turns():
    early = score("what is your pin", [])
    late = score("what is your pin", [_user("a"), _user("b"), _user("c")])
    assert "early_sensitive_request" in early.matchedPatterns
    assert "early_sensitive_request" not in late.matchedPatterns


def test_pressure_words_need_word_boundaries():
    result = score("I know you are busy, I will call tomorrow", [])
    assert "escalating_pressure" not in result.matchedPatterns


def test_history_accepts_plain_dicts():
    with_models = score("send the otp now please", [_user("send the otp now please")])
    with_dicts = score("send the otp now please", [{"role": "user", "text": "send the otp now please"}])
    assert with_models == with_dicts


def test_single_strong_layer_floor():
    # only the intelligence layer fires
    result = score("9876543210", [])
    assert result.layerScores.intelligence == pytest.approx(0.3)
    assert result.confidence == pytest.approx(0.35)
    assert result.isScam is True


def test_scam_threshold_is_configurable():
    strict = MultiLayerScorer(config=dataclasses.replace(DEFAULT_SCORING, scam_threshold=0.9))
    result = strict.score(BANK_OTP_SCAM, [])
    assert result.confidence == pytest.approx(0.8025)
    assert result.isScam is False


def test_fixture_catalogue_substitution():
    catalogue = PatternCatalogue.compile(
        scam_patterns={"test": [("magic_word", r"\bxyzzy\b")]},
        phrases=(),
    )
    result = MultiLayerScorer(catalogue=catalogue).score("xyzzy", [])
    assert result.matchedPatterns == ["magic_word"]
    assert result.categories == ["test"]
    assert result.layerScores.pattern == pytest.approx(0.15)
    assert result.confidence == pytest.approx(0.06)
    assert result.isScam is False


def test_malformed_catalogue_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        PatternCatalogue.compile(scam_patterns={"bad": [("broken", r"(unclosed")]})
    with pytest.raises(ConfigurationError):
        PatternCatalogue.compile(scam_patterns={"empty": []})
    with pytest.raises(ConfigurationError):
        PatternCatalogue.compile(scam_patterns={"bad": ["not-a-pair"]})


def test_jaccard_similarity():
    assert jaccard_similarity("send the otp", "send the otp") == 1.0
    assert jaccard_similarity("send the otp", "") == 0.0
    assert jaccard_similarity("a b", "b c") == pytest.approx(1 / 3)

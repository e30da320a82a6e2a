"""
PATTERN CATALOGUE - Centrally loaded, immutable detection tables

The raw tables below are plain category -> pattern mappings. They are
compiled once into a frozen PatternCatalogue; scorer and state machine only
read from the catalogue, so tests can build a fixture catalogue with
PatternCatalogue.compile(...) without touching scoring logic.

A malformed table raises ConfigurationError at load time.
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError
from .models import ConversationState

logger = logging.getLogger(__name__)


# ==============================================================================
# PATTERN LAYER - category -> (name, regex)
# ==============================================================================

SCAM_PATTERNS: Dict[str, List[Tuple[str, str]]] = {
    "banking": [
        ("kyc", r"\bkyc\b"),
        ("update_account", r"\bupdate\b.*\b(account|kyc|details)"),
        ("verify_account", r"\bverify\b.*\b(account|kyc|identity|upi)"),
        ("freeze_account", r"\bfreez\w*.*\b(account|card)"),
        ("block_account", r"\bblock\w*.*\b(account|card|upi)"),
        ("suspend_account", r"\bsuspend\w*.*\b(account|card)"),
        ("upi_pin", r"\bupi\b.*\b(pin|password|verify)"),
        ("atm_pin", r"\batm\b.*\b(pin|password)"),
        ("otp_request", r"\b(send|confirm|enter|share)\b.*\b(otp|pin|cvv)\b"),
        ("cvv", r"\bcvv\b"),
        ("card_details", r"\bcard\b.*\b(details|number|info)"),
        ("refund_pending", r"\brefund\b.*\b(process|pending)"),
        ("cashback", r"\bcashback"),
        ("bank_details", r"\bbank\b.*\bdetails"),
        ("deactivate_account", r"\bdeactivat\w*.*\baccount"),
    ],
    "phishing": [
        ("click_link", r"\bclick\b.*\b(link|here)"),
        ("verify_link", r"\bverify\b.*\b(link|here)\b"),
        ("urgent_action", r"\burgent\b.*\baction"),
        ("claim_prize", r"\bclaim\b.*\b(prize|reward|money|gift)"),
        ("won_prize", r"\bwon\b.*\b(lottery|prize|car|iphone|money|cash|reward|gift|phone|laptop)"),
        ("you_won", r"\byou\b.*\b(won|win|selected)\b"),
        ("congratulations", r"\bcongratulations\b.*\b(won|winner|selected)"),
        ("lucky_winner", r"\blucky\b.*\b(winner|draw)"),
        ("lottery_claim", r"\blottery\b"),
    ],
    "fake_offers": [
        ("limited_offer", r"\blimited\b.*\b(offer|slot)s?\b"),
        ("free_gift", r"\bfree\b.*\b(gift|car|iphone|laptop|phone|money|cash)"),
        ("earn_money", r"\bearn\b.*\b(money|cash|income|lakh|thousand)"),
        ("work_from_home", r"\bwork\b.*\b(from home|online)"),
        ("instant_loan", r"\binstant\b.*\b(loan|money|cash)"),
        ("guaranteed_returns", r"\bguaranteed\b.*\b(returns?|profit|income)"),
        ("double_money", r"\b(double|triple)\b.*\b(money|income)"),
        ("part_time_job", r"\bpart.?time\b.*\b(job|work|income)"),
        ("investment_offer", r"\binvestment\b.*\b(opportunity|scheme|plan)"),
    ],
    "urgency": [
        ("urgent", r"\burgent"),
        ("immediate", r"\bimmediate"),
        ("expires_soon", r"\bexpir\w*.*\b(today|soon|now)\b"),
        ("last_chance", r"\blast\b.*\b(chance|day|hour|warning)"),
        ("act_now", r"\bact\b.*\b(now|fast|quick)"),
        ("limited_time", r"\blimited\b.*\b(time|period)"),
        ("hurry", r"\bhurry"),
        ("quickly", r"\bquickly\b"),
        ("right_now", r"\bright\s+now\b"),
        ("within_deadline", r"\bwithin\b.*\b(hours?|minutes?|mins?)\b"),
    ],
    "contact_requests": [
        ("send_details", r"\bsend\b.*\b(details|info|number|otp|pin)\b"),
        ("share_details", r"\bshare\b.*\b(number|details|otp|pin)\b"),
        ("provide_details", r"\bprovide\b.*\b(number|details|info)"),
        ("call_back", r"\bcall\b.*\b(back|me|now)\b"),
        ("whatsapp", r"\bwhatsapp\b"),
        ("message_back", r"\bmessage\b.*\bback\b"),
        ("reply_with", r"\breply\b.*\bwith\b"),
    ],
    "emotional_manipulation": [
        ("plea_for_help", r"\b(please|pls)\s+help\b"),
        ("friend_in_need", r"\b(your|my)\s+(son|daughter|mother|father|family|brother|sister)\b.*\b(hospital|accident|emergency|arrested|trouble)"),
        ("guilt_pressure", r"\b(you will regret|don'?t you care|only you can help)\b"),
        ("trust_building", r"\btrust\s+me\b"),
        ("fear_of_loss", r"\b(lose|losing)\b.*\b(everything|savings|money|account)\b"),
    ],
    "authority_validation": [
        ("rbi_claim", r"\b(rbi|reserve bank|income tax|cbi|customs|trai|sebi|cyber (cell|crime|police))\b"),
        ("authority_impersonation", r"\b(i am|this is|calling from|speaking from)\b.*\b(officer|official|department|police|bank)"),
        ("badge_number", r"\b(badge|employee|officer)\s*(id|number|no)\b"),
        ("legal_threat", r"\b(arrest warrant|court order|legal notice|fir)\b"),
    ],
    "multilingual": [
        ("hindi_urgency", r"\b(jaldi|turant|abhi)\b"),
        ("hindi_send", r"\b(bhejo|bhej do|bhejiye|bheje|dijiye)\b"),
        ("hindi_account", r"\b(khata|khaata)\b"),
        ("hindi_otp", r"\botp\b.*\b(batao|bhejo|bataiye)\b"),
        ("hindi_block", r"\bblock\s+ho\s+(jayega|jaega|gaya)\b"),
        ("devanagari_text", r"[ऀ-ॿ]+"),
    ],
    "brand_impersonation": [
        ("bank_impersonation", r"\b(sbi|hdfc|icici|axis|kotak|pnb|bank of baroda)\b.*\b(team|support|care|department|official)"),
        ("payment_brand", r"\b(paytm|phonepe|google pay|gpay|bhim)\b.*\b(support|team|kyc|care|helpdesk)"),
        ("ecommerce_brand", r"\b(amazon|flipkart|myntra)\b.*\b(reward|prize|refund|lucky|gift)"),
        ("telecom_brand", r"\b(jio|airtel|vodafone)\b.*\b(sim|kyc|block|deactivat)"),
        ("tech_support_scam", r"\b(microsoft|windows|apple)\b.*\b(support|virus|security|alert)"),
    ],
}

SCAM_PHRASES: Tuple[str, ...] = (
    # Banking/KYC
    "verify your account",
    "update kyc",
    "kyc verification",
    "account will be blocked",
    "account blocked",
    "account suspended",
    "upi suspended",
    "send otp",
    "confirm otp",
    "enter otp",
    "share otp",
    # Prize/Lottery
    "won lottery",
    "won car",
    "won iphone",
    "won prize",
    "won money",
    "you have won",
    "you won",
    "congratulations won",
    "selected winner",
    "lucky winner",
    "claim prize",
    "claim reward",
    # Offers
    "limited offer",
    "free gift",
    "free car",
    "free iphone",
    "work from home",
    "earn money",
    "guaranteed returns",
    "double your money",
    # Urgency
    "urgent action required",
    "urgent action",
    "expires today",
    "last chance",
    "act now",
    # Financial
    "cashback",
    "refund",
    "card details",
    "bank details",
    "cvv",
    "atm pin",
    "upi pin",
    "send money",
)


# ==============================================================================
# BEHAVIOR / CONTEXT / URGENCY LAYERS - named single regexes
# ==============================================================================

SIGNAL_PATTERNS: Dict[str, str] = {
    # Behavior
    "request_verb": r"\b(send|share|give|provide|verify)\b",
    "urgency_presence": r"\b(urgent\w*|immediate\w*|now|quickly|hurry|asap|today|deadline|within)\b",
    "emotional_phrasing": (
        r"\b(i am (so )?(worried|scared) for you|for your (own )?(safety|good)|"
        r"i am (only )?trying to help you|don'?t you trust me|"
        r"i('m| am) your well ?wisher|you will lose everything|please understand my situation)\b"
    ),
    # Context
    "reward_mention": r"\b(won|win|prize|lottery|free|earn|reward|gift|cashback)\b",
    "sensitive_request": r"\b(otp|pin|password|cvv|card)\b|\baccount\b.*\bdetails\b",
    "prize_mention": r"\b(won|win|prize|free|lottery)\b",
    "payment_mention": r"\b(pay|payment|send|money|fee|charges?|transfer|deposit)\b",
    "link_mention": r"https?://|www\.|\blink\b|\bclick\b|\b[a-z0-9-]+\.(com|in|xyz|tk|ml|ga|cf|gq|info|net|org)\b",
    "no_payment_claim": (
        r"\b(no (payment|fee|charges?|money)( is)? (needed|required)|free of (cost|charge)|"
        r"you (don'?t|do not) (need|have) to pay|no (hidden )?charges?)\b"
    ),
    "payment_ask": r"\b(pay|transfer|send|deposit)\b.*(\b(rs\.?|rupees?|amount|money|fee|charges?)\b|₹|\b\d{2,}\b)",
    "authority_mention": r"\b(bank|rbi|government|police|tax)\b",
    # Urgency layer
    "temporal_pressure": r"\b(urgent\w*|immediate\w*|now|quickly|hurry|asap|today|hours?)\b",
    "threat_of_loss": r"\b(block\w*|suspend\w*|freez\w*|froze\w*|deactivat\w*|expir\w*|lose|losing|lost|close\w*)\b",
    "call_to_action": r"\b(act|verify|confirm|update|send|click|call)\b",
}

PRESSURE_WORDS: Tuple[str, ...] = ("urgent", "immediately", "now", "quickly", "hurry")


# ==============================================================================
# STATE MACHINE TRIGGERS - ordered, first outranking match wins
# ==============================================================================

AGGRESSION_PATTERNS: Tuple[str, ...] = (
    r"\b(stupid|idiot|fool|useless|dumb|moron)\b",
    r"\bwast(e|ing)\b.*\btime\b",
    r"\b(nonsense|rubbish|bullshit)\b",
    r"\bshut ?up\b",
    r"\b(do what i say|just do it|stop asking)\b",
    r"\bwhat('?s| is) wrong with you\b",
    r"\bi will report you\b",
)

NON_NEGOTIABLE_TRIGGERS: Tuple[Tuple[str, str, ConversationState], ...] = (
    ("abuse", "|".join(AGGRESSION_PATTERNS), ConversationState.TERMINATED),
    (
        "otp_request",
        r"\b(send|share|give|tell|provide|enter|forward|confirm|need|want)\b.*"
        r"\b(otp|one.?time.?password|verification code|pin|cvv)\b|"
        r"\b(otp|cvv)\b.*\b(bhejo|batao|bhej)\b",
        ConversationState.CONFIRMED_SCAM,
    ),
    (
        "payment_request",
        r"\b(pay|transfer|send|deposit)\b.*(\b(rs\.?|rupees?|amount|money|fee|charges?)\b|₹)|"
        r"\b(processing|registration|clearance|release|token|advance)\s+fee\b",
        ConversationState.CONFIRMED_SCAM,
    ),
    (
        "link_request",
        r"https?://|www\.|\b(click|open|visit|tap)\b.*\b(link|here|url|website)\b|\bdownload\b.*\bapp\b",
        ConversationState.HIGH_RISK,
    ),
    (
        "reward",
        r"\b(lottery|jackpot|lucky draw|you (have )?won|prize|winner)\b",
        ConversationState.HIGH_RISK,
    ),
    (
        "threat",
        r"\b(arrest\w*|police|legal action|court|warrant|jail|fir|lawsuit|penalty)\b",
        ConversationState.HIGH_RISK,
    ),
    (
        "urgency",
        r"\b(within\s+\d+\s*(hours?|minutes?|mins?)|deadline|expires? (today|tonight|soon)|"
        r"last (chance|warning)|final notice)\b",
        ConversationState.HIGH_RISK,
    ),
    (
        "authority_claim",
        r"\b(rbi|reserve bank|income tax|customs|cbi|bank (manager|official|officer)|"
        r"customer care|security team|fraud department|government official|officer)\b",
        ConversationState.SUSPICIOUS,
    ),
)


@dataclass(frozen=True)
class NamedPattern:
    name: str
    category: str
    pattern: re.Pattern


@dataclass(frozen=True)
class TriggerRule:
    scenario: str
    pattern: re.Pattern
    target: ConversationState


def _compile(source: str, label: str) -> re.Pattern:
    try:
        return re.compile(source, re.IGNORECASE)
    except (re.error, TypeError) as e:
        raise ConfigurationError(f"Invalid pattern for {label!r}: {e}") from e


@dataclass(frozen=True)
class PatternCatalogue:
    category_patterns: Tuple[NamedPattern, ...]
    phrases: Tuple[str, ...]
    signals: Mapping[str, re.Pattern]
    pressure_words: Tuple[re.Pattern, ...]
    aggression: Tuple[re.Pattern, ...]
    triggers: Tuple[TriggerRule, ...]

    @classmethod
    def compile(
        cls,
        scam_patterns: Mapping[str, Sequence[Tuple[str, str]]] = SCAM_PATTERNS,
        phrases: Iterable[str] = SCAM_PHRASES,
        signals: Mapping[str, str] = SIGNAL_PATTERNS,
        pressure_words: Iterable[str] = PRESSURE_WORDS,
        aggression: Iterable[str] = AGGRESSION_PATTERNS,
        triggers: Iterable[Tuple[str, str, ConversationState]] = NON_NEGOTIABLE_TRIGGERS,
    ) -> "PatternCatalogue":
        """Compile raw tables, raising ConfigurationError on anything malformed"""
        compiled_patterns: List[NamedPattern] = []
        for category, entries in scam_patterns.items():
            if not entries:
                raise ConfigurationError(f"Category {category!r} has no patterns")
            for entry in entries:
                try:
                    name, source = entry
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(
                        f"Category {category!r} entry must be (name, regex): {entry!r}"
                    ) from e
                compiled_patterns.append(
                    NamedPattern(name, category, _compile(source, f"{category}.{name}"))
                )

        phrase_list = tuple(p.lower().strip() for p in phrases)
        if any(not p for p in phrase_list):
            raise ConfigurationError("Scam phrases must be non-empty strings")

        missing = [key for key in SIGNAL_PATTERNS if key not in signals]
        if missing:
            raise ConfigurationError(f"Missing signal patterns: {missing}")
        compiled_signals = {key: _compile(src, key) for key, src in signals.items()}

        compiled_pressure = tuple(
            _compile(rf"\b{re.escape(word)}\b", f"pressure:{word}") for word in pressure_words
        )
        compiled_aggression = tuple(_compile(src, "aggression") for src in aggression)

        compiled_triggers = []
        for scenario, source, target in triggers:
            if not isinstance(target, ConversationState):
                raise ConfigurationError(f"Trigger {scenario!r} has invalid target {target!r}")
            compiled_triggers.append(TriggerRule(scenario, _compile(source, scenario), target))

        catalogue = cls(
            category_patterns=tuple(compiled_patterns),
            phrases=phrase_list,
            signals=compiled_signals,
            pressure_words=compiled_pressure,
            aggression=compiled_aggression,
            triggers=tuple(compiled_triggers),
        )
        logger.debug(
            f"Pattern catalogue loaded: {len(compiled_patterns)} patterns, "
            f"{len(phrase_list)} phrases, {len(compiled_triggers)} triggers"
        )
        return catalogue

    def signal(self, name: str, text: str) -> bool:
        return self.signals[name].search(text) is not None

    def detect_aggression(self, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(p.search(text) for p in self.aggression)


# Loaded once at import; a broken table fails startup here
DEFAULT_CATALOGUE = PatternCatalogue.compile()

"""
AGENT CONTROLLER - Proposed reply generation

The honeypot plays a confused, non-technical Indian user. This module only
PROPOSES a reply; the Response Governor decides what is actually sent.

SOURCES:
1. Groq chat completion (when GROQ_API_KEY is set), bounded by
   REPLY_TIMEOUT_SECONDS
2. Rule-based fallback by engagement phase and message topic

Any upstream failure is raised as UpstreamReplyFailure and recovered here
with the fallback, so callers always get a non-empty string. Template choice
is keyed on the turn count, never random.
"""

import asyncio
import re
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from groq import AsyncGroq

from .analysis_engine import phase_behavior
from .config import Settings, load_settings
from .errors import UpstreamReplyFailure
from .models import DetectionResult, EngagementPhase

logger = logging.getLogger(__name__)


# ==============================================================================
# RULE-BASED REPLIES - phase -> topic -> templates
# ==============================================================================

TOPIC_PATTERNS: Tuple[Tuple[str, re.Pattern], ...] = (
    ("urgency", re.compile(r'\b(?:urgent\w*|immediate\w*|now|quick\w*|fast|hurry)\b', re.I)),
    ("kyc", re.compile(r'\b(?:kyc|verify|update|account)\b', re.I)),
    ("lottery", re.compile(r'\b(?:won|lottery|prize|car|iphone|gift)\b', re.I)),
    ("otp", re.compile(r'\b(?:otp|pin|code)\b|\d{4,}', re.I)),
    ("money", re.compile(r'\b(?:upi|paytm|phonepe|gpay|send|pay|money|rupees|amount)\b|@|₹', re.I)),
    ("link", re.compile(r'\b(?:link|click|website|url)\b|https?://', re.I)),
)

FALLBACK_REPLIES: Dict[EngagementPhase, Dict[str, Tuple[str, ...]]] = {
    EngagementPhase.EARLY: {
        "kyc": (
            "Oh no, KYC issue? I'm worried now. What happened?",
            "Account verification? I didn't know there was a problem.",
            "KYC? I'm not sure what that means exactly. Is my account okay?",
        ),
        "lottery": (
            "Really? I won something? How did this happen?",
            "I can't believe it! Are you sure you have the right person?",
            "Wow, I never win anything. Which company is this from?",
        ),
        "otp": (
            "OTP? I'm not sure what that is. Where do I find it?",
            "Which code are you talking about? I get many messages.",
        ),
        "money": (
            "Payment? I'm not sure how to do that.",
            "UPI? I think I have that app but I rarely use it.",
        ),
        "default": (
            "I just got your message. Can you explain this more clearly?",
            "Sorry, I'm a bit confused. Who is this?",
            "This is important right? I want to understand properly.",
        ),
    },
    EngagementPhase.MID: {
        "money": (
            "Is it your personal UPI or company UPI?",
            "I'm trying to open the app but it is asking for more details.",
            "The message is not clear. Which UPI address was it?",
        ),
        "link": (
            "The link is not opening on my phone.",
            "My phone says the link is suspicious. Is it safe?",
        ),
        "otp": (
            "OTP hasn't come yet. Should I wait?",
            "I'm getting many messages, I don't know which one is right.",
        ),
        "kyc": (
            "What documents do I need for KYC? I have Aadhar card.",
            "Do I need to visit the branch for this?",
            "My friend also got this message. Is this for everyone?",
        ),
        "default": (
            "Is this official? How do I know this is real?",
            "Let me write this down so I don't make a mistake. Go slow please.",
        ),
    },
    EngagementPhase.LATE: {
        "urgency": (
            "I'm trying but my internet is slow. Give me 2 minutes.",
            "App is loading, this phone is old.",
            "Battery is 5%. Let me charge the phone first.",
        ),
        "money": (
            "I tried sending but it failed. The app is showing an error.",
            "The payment page is stuck on loading.",
        ),
        "otp": (
            "OTP is not coming. Network problem maybe.",
            "I got some code but it expired already.",
        ),
        "link": (
            "Link opened but the page is blank.",
            "My phone's browser crashed when I opened it.",
        ),
        "default": (
            "I'm a little nervous about this. Give me some time.",
            "I need to think about this properly first.",
        ),
    },
    EngagementPhase.FINAL: {
        "default": (
            "Doing it now, app is opening.",
            "My phone hanged. Restarting, wait 1 minute.",
            "Transaction is processing, it's taking time.",
            "It says failed. I will try again tomorrow.",
        ),
    },
}


def message_topics(message: str) -> List[str]:
    return [topic for topic, pattern in TOPIC_PATTERNS if pattern.search(message or "")]


def fallback_reply(message: str, phase: EngagementPhase, turn_count: int) -> str:
    """Deterministic rule-based reply for the phase and message content"""
    try:
        phase = EngagementPhase(phase)
    except ValueError:
        phase = EngagementPhase.EARLY
    by_topic = FALLBACK_REPLIES[phase]

    # first matching topic this phase has templates for
    topic = next((t for t in message_topics(message) if t in by_topic), "default")
    templates = by_topic[topic]
    return templates[max(turn_count, 0) % len(templates)]


class AgentController:
    """
    Proposes the honeypot's next reply.

    The Groq client is optional: without an API key (or with an injected
    client of None) every reply comes from the rule-based fallback.
    """

    def __init__(self, settings: Optional[Settings] = None, client=None):
        self.settings = settings or load_settings()
        self.model = self.settings.groq_model
        if client is not None:
            self.client = client
        elif self.settings.groq_api_key:
            self.client = AsyncGroq(api_key=self.settings.groq_api_key)
        else:
            self.client = None

    async def generate_reply(
        self,
        message: str,
        history: Optional[Sequence],
        detection: DetectionResult,
        *,
        phase: EngagementPhase = EngagementPhase.EARLY,
        turn_count: int = 0,
    ) -> str:
        if self.client is not None:
            try:
                return await self._llm_reply(message, history, detection, phase)
            except UpstreamReplyFailure as e:
                logger.warning(f"⚠️ LLM reply unavailable, using fallback: {e}")

        return fallback_reply(message, phase, turn_count)

    async def _llm_reply(
        self,
        message: str,
        history: Optional[Sequence],
        detection: DetectionResult,
        phase: EngagementPhase,
    ) -> str:
        behavior = phase_behavior(phase)
        recent = []
        for turn in list(history or [])[-4:]:
            role = turn.get("role") if isinstance(turn, dict) else getattr(turn, "role", "")
            text = turn.get("text") if isinstance(turn, dict) else getattr(turn, "text", "")
            speaker = "Them" if role == "user" else "Me"
            recent.append(f"{speaker}: {text}")
        history_text = "\n".join(recent) if recent else "None"

        question_rule = (
            "- You may ask one simple clarification question"
            if behavior.allow_questions
            else "- Do NOT ask any questions"
        )

        prompt = f"""You are a CONFUSED, NON-TECHNICAL Indian user receiving messages from a stranger.

TONE: {behavior.tone}
RISK: {detection.riskTier.value}

RULES:
- MAX 15 WORDS, 1 or 2 short sentences
{question_rule}
- NEVER share OTP, PIN, passwords, account or card numbers
- NEVER claim to be police, bank staff or any official
- NEVER accuse the sender

Recent conversation:
{history_text}

Message: "{(message or '')[:200]}"

Reply:"""

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {
                            "role": "system",
                            "content": "You are a confused ordinary Indian user. Very short replies.",
                        },
                        {"role": "user", "content": prompt},
                    ],
                    temperature=0.4,
                    max_tokens=40,
                ),
                timeout=self.settings.reply_timeout_seconds,
            )
            reply = response.choices[0].message.content or ""
        except Exception as e:
            raise UpstreamReplyFailure(f"{type(e).__name__}: {e}") from e

        reply = reply.strip().strip('"\'')
        if reply.startswith("Me:"):
            reply = reply[3:].strip()
        if not reply:
            raise UpstreamReplyFailure("Empty completion")
        return reply

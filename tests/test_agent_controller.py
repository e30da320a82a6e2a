from __future__ import annotations

import asyncio
import dataclasses
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from scam_engine.agent_controller import (
    FALLBACK_REPLIES,
    AgentController,
    fallback_reply,
    message_topics,
)
from scam_engine.models import DetectionResult, EngagementPhase


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _client(create) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


def test_message_topics_in_order():
    assert message_topics("Send the OTP now") == ["urgency", "otp", "money"]
    assert message_topics("hello") == []


def test_fallback_uses_first_topic_the_phase_knows():
    reply = fallback_reply("Send the OTP now", EngagementPhase.LATE, 1)
    assert reply == FALLBACK_REPLIES[EngagementPhase.LATE]["urgency"][1]

    # early phase has no urgency templates
    reply = fallback_reply("Send the OTP now", EngagementPhase.EARLY, 0)
    assert reply == FALLBACK_REPLIES[EngagementPhase.EARLY]["otp"][0]


def test_fallback_default_and_rotation():
    replies = [fallback_reply("hello", EngagementPhase.FINAL, turn) for turn in range(4)]
    assert replies == list(FALLBACK_REPLIES[EngagementPhase.FINAL]["default"])
    assert fallback_reply("hello", EngagementPhase.FINAL, 4) == replies[0]


def test_fallback_is_deterministic():
    assert fallback_reply("Your KYC is pending", "mid", 2) == fallback_reply("Your KYC is pending", "mid", 2)


def test_late_and_final_fallbacks_ask_nothing():
    for phase in (EngagementPhase.LATE, EngagementPhase.FINAL):
        for templates in FALLBACK_REPLIES[phase].values():
            assert all("?" not in template for template in templates)


@pytest.mark.asyncio
async def test_without_client_uses_fallback(settings):
    controller = AgentController(settings)
    assert controller.client is None

    reply = await controller.generate_reply("hello", [], DetectionResult.empty(), turn_count=1)
    assert reply == FALLBACK_REPLIES[EngagementPhase.EARLY]["default"][1]


@pytest.mark.asyncio
async def test_llm_reply_is_cleaned(settings):
    create = AsyncMock(return_value=_completion('"Me: Who is this?"'))
    controller = AgentController(settings, client=_client(create))

    reply = await controller.generate_reply("hello", [], DetectionResult.empty())
    assert reply == "Who is this?"
    create.assert_awaited_once()
    assert create.call_args.kwargs["model"] == settings.groq_model


@pytest.mark.asyncio
async def test_late_phase_prompt_forbids_questions(settings):
    create = AsyncMock(return_value=_completion("Wait, app is loading."))
    controller = AgentController(settings, client=_client(create))

    await controller.generate_reply("pay now", [], DetectionResult.empty(), phase=EngagementPhase.LATE)
    prompt = create.call_args.kwargs["messages"][1]["content"]
    assert "Do NOT ask any questions" in prompt


@pytest.mark.asyncio
async def test_upstream_error_falls_back(settings):
    create = AsyncMock(side_effect=RuntimeError("service unavailable"))
    controller = AgentController(settings, client=_client(create))

    reply = await controller.generate_reply("hello", [], DetectionResult.empty(), turn_count=0)
    assert reply == FALLBACK_REPLIES[EngagementPhase.EARLY]["default"][0]


@pytest.mark.asyncio
async def test_empty_completion_falls_back(settings):
    create = AsyncMock(return_value=_completion("   "))
    controller = AgentController(settings, client=_client(create))

    reply = await controller.generate_reply("hello", [], DetectionResult.empty())
    assert reply in FALLBACK_REPLIES[EngagementPhase.EARLY]["default"]


@pytest.mark.asyncio
async def test_timeout_falls_back(settings):
    async def slow_create(**kwargs):
        await asyncio.sleep(1)
        return _completion("too late")

    controller = AgentController(
        dataclasses.replace(settings, reply_timeout_seconds=0.01),
        client=_client(slow_create),
    )
    reply = await controller.generate_reply("hello", [], DetectionResult.empty())
    assert reply in FALLBACK_REPLIES[EngagementPhase.EARLY]["default"]

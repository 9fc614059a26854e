"""Tests for PsychologyAgent: LLM profile with deterministic stage overlay."""

from unittest.mock import AsyncMock, patch

from doro_platform.agents.base import AgentResult
from doro_platform.agents.pipeline.psychology_agent import PsychologyAgent


_GENERATE = "doro_platform.agents.pipeline.psychology_agent.PsychologyAgent.generate_json"


class TestPsychologyAgent:
    async def test_success_overlays_computed_stage(self, make_context):
        context = make_context("Can we book an appointment this week?")
        llm = AgentResult.success(
            {
                "communicationStyle": "direct",
                "urgencyScore": 0.8,
                "resistanceLevel": "low",
                "appointmentReadiness": "ready",
                # The model's stage is ignored
                "conversationStage": "initial",
            }
        )

        with patch(_GENERATE, new_callable=AsyncMock, return_value=llm):
            result = await PsychologyAgent().analyze(context)

        assert result.ok
        profile = result.data
        assert profile.conversation_stage == "qualified"
        assert profile.communication_style == "direct"
        assert profile.appointment_readiness == "ready"
        assert profile.fallback is False

    async def test_continuity_is_computed_locally(self, make_context):
        context = make_context(
            "around $1.5 million",
            history=[("lead", "hi"), ("bot", "What's your budget?")],
        )
        llm = AgentResult.success({"conversationContinuity": {"repetitionRisk": "high"}})

        with patch(_GENERATE, new_callable=AsyncMock, return_value=llm):
            result = await PsychologyAgent().analyze(context)

        continuity = result.data.conversation_continuity
        assert continuity.repetition_risk == "low"
        assert continuity.context_awareness == "Responding to budget question"

    async def test_llm_failure_returns_fallback(self, make_context, monitor):
        with patch(
            _GENERATE, new_callable=AsyncMock, return_value=AgentResult.failure("timeout")
        ):
            result = await PsychologyAgent(metrics=monitor).analyze(make_context())

        assert not result.ok
        assert result.fallback
        assert result.error == "timeout"
        assert result.data.fallback is True
        assert result.data.conversation_stage == "browsing"
        assert monitor.stages["psychology"].attempts == 1
        assert monitor.stages["psychology"].successes == 0

    async def test_unexpected_exception_returns_fallback(self, make_context):
        with patch(_GENERATE, new_callable=AsyncMock, side_effect=RuntimeError("boom")):
            result = await PsychologyAgent().analyze(make_context())

        assert not result.ok
        assert "boom" in result.error
        assert result.data.fallback is True

    async def test_empty_content_uses_defaults(self, make_context):
        with patch(_GENERATE, new_callable=AsyncMock, return_value=AgentResult.success({})):
            result = await PsychologyAgent().analyze(make_context("Hello there"))

        assert result.ok
        assert result.data.communication_style == "polite"
        assert result.data.conversation_stage == "initial"
        assert result.data.fallback is False

    async def test_success_is_recorded(self, make_context, monitor):
        with patch(_GENERATE, new_callable=AsyncMock, return_value=AgentResult.success({})):
            await PsychologyAgent(metrics=monitor).analyze(make_context())

        assert monitor.stages["psychology"].successes == 1

    def test_prompt_includes_recent_bot_replies(self, make_context):
        context = make_context(
            "ok",
            history=[("bot", "Hi! I'm Doro."), ("lead", "hello"), ("bot", "Which area?")],
            budget="$2M",
        )
        prompt = PsychologyAgent().build_prompt(context)

        assert "RECENT BOT RESPONSES" in prompt
        assert "Which area?" in prompt
        assert "Budget: $2M" in prompt
        assert '"contextAwareness"' in prompt

"""Tests for the Gemini client wrapper and BaseAgent generation/parsing."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from doro_platform.agents.base import AgentResult, BaseAgent


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fake_settings(timeout=5.0):
    """Return a mock Settings object with a fake API key."""
    s = MagicMock()
    s.gemini_api_key = "fake-key-for-testing"
    s.gemini_model = "gemini-test"
    s.llm_timeout_seconds = timeout
    return s


def _fake_response(text, prompt_tokens=12, completion_tokens=30):
    response = MagicMock()
    response.text = text
    response.usage_metadata.prompt_token_count = prompt_tokens
    response.usage_metadata.candidates_token_count = completion_tokens
    return response


def _fake_model(response=None, side_effect=None):
    model = MagicMock()
    model.generate_content_async = AsyncMock(return_value=response, side_effect=side_effect)
    return model


# ===================================================================
# Gemini client
# ===================================================================


class TestGetModel:
    @patch("doro_platform.infra.gemini_client.get_settings", return_value=_fake_settings())
    @patch("doro_platform.infra.gemini_client.genai")
    def test_json_mode(self, mock_genai, _mock_settings):
        from doro_platform.infra.gemini_client import get_model

        get_model(json_mode=True, temperature=0.3, max_output_tokens=600)

        mock_genai.configure.assert_called_once_with(api_key="fake-key-for-testing")
        kwargs = mock_genai.GenerativeModel.call_args.kwargs
        assert kwargs["model_name"] == "gemini-test"
        assert kwargs["generation_config"] == {
            "temperature": 0.3,
            "max_output_tokens": 600,
            "response_mime_type": "application/json",
        }

    @patch("doro_platform.infra.gemini_client.get_settings", return_value=_fake_settings())
    @patch("doro_platform.infra.gemini_client.genai")
    def test_plain_text(self, mock_genai, _mock_settings):
        from doro_platform.infra.gemini_client import get_model

        get_model(model_name="gemini-other", system_instruction="Be brief.")

        kwargs = mock_genai.GenerativeModel.call_args.kwargs
        assert kwargs["model_name"] == "gemini-other"
        assert kwargs["system_instruction"] == "Be brief."
        assert "response_mime_type" not in kwargs["generation_config"]
        assert "max_output_tokens" not in kwargs["generation_config"]


# ===================================================================
# BaseAgent
# ===================================================================


class TestGenerate:
    async def test_success_tracks_tokens(self):
        agent = BaseAgent(agent_name="test_agent", temperature=0.4)
        model = _fake_model(_fake_response('{"a": 1}'))

        with (
            patch("doro_platform.agents.base.get_settings", return_value=_fake_settings()),
            patch("doro_platform.infra.gemini_client.get_model", return_value=model) as mock_get_model,
        ):
            result = await agent.generate("hello", temperature=0.1)

        assert result.ok
        assert result.data == '{"a": 1}'
        assert result.tokens_used == 42
        assert mock_get_model.call_args.kwargs["temperature"] == 0.1

    async def test_agent_temperature_is_default(self):
        agent = BaseAgent(agent_name="test_agent", temperature=0.4, max_output_tokens=300)
        model = _fake_model(_fake_response("ok"))

        with (
            patch("doro_platform.agents.base.get_settings", return_value=_fake_settings()),
            patch("doro_platform.infra.gemini_client.get_model", return_value=model) as mock_get_model,
        ):
            await agent.generate("hello")

        assert mock_get_model.call_args.kwargs["temperature"] == 0.4
        assert mock_get_model.call_args.kwargs["max_output_tokens"] == 300

    async def test_api_error_is_failure(self):
        agent = BaseAgent(agent_name="test_agent")
        model = _fake_model(side_effect=RuntimeError("quota exceeded"))

        with (
            patch("doro_platform.agents.base.get_settings", return_value=_fake_settings()),
            patch("doro_platform.infra.gemini_client.get_model", return_value=model),
        ):
            result = await agent.generate("hello")

        assert not result.ok
        assert "quota exceeded" in result.error

    async def test_slow_model_times_out(self):
        agent = BaseAgent(agent_name="test_agent")

        async def _slow(prompt):
            await asyncio.sleep(1)

        model = MagicMock()
        model.generate_content_async = _slow

        with (
            patch("doro_platform.agents.base.get_settings", return_value=_fake_settings(timeout=0.05)),
            patch("doro_platform.infra.gemini_client.get_model", return_value=model),
        ):
            result = await agent.generate("hello")

        assert not result.ok
        assert "TimeoutError" in result.error


class TestGenerateJson:
    async def test_parses_json(self):
        agent = BaseAgent(agent_name="test_agent")

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.success(data='{"a": 1}', tokens_used=9)
            result = await agent.generate_json(prompt="test", temperature=0.3)

        assert result.ok
        assert result.data == {"a": 1}
        assert result.tokens_used == 9
        mock_gen.assert_called_once_with(
            prompt="test",
            system_instruction=None,
            json_mode=True,
            temperature=0.3,
        )

    @pytest.mark.parametrize("raw", ["", "   ", None])
    async def test_empty_content_is_empty_object(self, raw):
        agent = BaseAgent(agent_name="test_agent")

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.success(data=raw)
            result = await agent.generate_json(prompt="test")

        assert result.ok
        assert result.data == {}

    async def test_malformed_json_is_failure(self):
        agent = BaseAgent(agent_name="test_agent")

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.success(data="Sure! Here is the JSON: {")
            result = await agent.generate_json(prompt="test")

        assert not result.ok
        assert result.error.startswith("JSON parse error")

    async def test_generation_failure_passes_through(self):
        agent = BaseAgent(agent_name="test_agent")

        with patch.object(agent, "generate", new_callable=AsyncMock) as mock_gen:
            mock_gen.return_value = AgentResult.failure("timeout")
            result = await agent.generate_json(prompt="test")

        assert not result.ok
        assert result.error == "timeout"

"""Shared model-calling base for the Doro pipeline.

The five stage agents and the FactVerifier all talk to Gemini through
``BaseAgent``. A call never raises: it comes back as an ``AgentResult``
carrying either the payload or an error string, together with the
token count and wall-clock latency.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from doro_platform.app.config import get_settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class AgentResult:
    """Outcome of one model call (Result pattern).

    ``ok`` tells the caller which of ``data`` / ``error`` is meaningful.
    ``tokens_used`` is prompt plus completion tokens when the API reports
    usage, else 0.
    """

    ok: bool
    data: Any = None
    error: Optional[str] = None
    tokens_used: int = 0
    latency_ms: int = 0

    @classmethod
    def success(cls, data: Any, tokens_used: int = 0, latency_ms: int = 0) -> "AgentResult":
        return cls(ok=True, data=data, tokens_used=tokens_used, latency_ms=latency_ms)

    @classmethod
    def failure(cls, error: str, latency_ms: int = 0) -> "AgentResult":
        return cls(ok=False, error=error, latency_ms=latency_ms)


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def _usage_tokens(response) -> int:
    usage = getattr(response, "usage_metadata", None)
    if not usage:
        return 0
    prompt_tokens = getattr(usage, "prompt_token_count", 0) or 0
    completion_tokens = getattr(usage, "candidates_token_count", 0) or 0
    return prompt_tokens + completion_tokens


# ---------------------------------------------------------------------------
# Base agent
# ---------------------------------------------------------------------------

class BaseAgent:
    """Holds one agent's generation settings and performs its model calls.

    Subclasses fix ``temperature`` and ``max_output_tokens`` in their
    constructor; a single call may still override the temperature (the
    strategy refinement pass does).
    """

    def __init__(
        self,
        agent_name: str,
        model_name: Optional[str] = None,
        temperature: float = 0.7,
        max_output_tokens: Optional[int] = None,
    ):
        self.agent_name = agent_name
        self.model_name = model_name
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        json_mode: bool = False,
        temperature: Optional[float] = None,
    ) -> AgentResult:
        """Single-turn completion; ``data`` is the raw response text.

        Bounded by ``llm_timeout_seconds``. Timeouts, transport and API
        errors all come back as a failure result.
        """
        start_time = time.time()
        try:
            from doro_platform.infra.gemini_client import get_model

            model = get_model(
                model_name=self.model_name,
                temperature=self.temperature if temperature is None else temperature,
                max_output_tokens=self.max_output_tokens,
                json_mode=json_mode,
                system_instruction=system_instruction,
            )
            response = await asyncio.wait_for(
                model.generate_content_async(prompt),
                timeout=get_settings().llm_timeout_seconds,
            )
            text = response.text
        except Exception as exc:
            latency_ms = _elapsed_ms(start_time)
            logger.error("[%s] Model call failed after %dms: %r", self.agent_name, latency_ms, exc)
            return AgentResult.failure(repr(exc), latency_ms=latency_ms)

        latency_ms = _elapsed_ms(start_time)
        tokens_used = _usage_tokens(response)
        logger.info("[%s] Model call ok: tokens=%d, latency=%dms", self.agent_name, tokens_used, latency_ms)
        return AgentResult.success(text, tokens_used=tokens_used, latency_ms=latency_ms)

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> AgentResult:
        """JSON-mode completion, parsed.

        Empty content parses to ``{}`` so the contract defaults apply.
        Text that is not valid JSON is a failure, which sends the stage to
        its fallback.
        """
        result = await self.generate(
            prompt=prompt,
            system_instruction=system_instruction,
            json_mode=True,
            temperature=temperature,
        )
        if not result.ok:
            return result

        raw = result.data
        if raw is None or not str(raw).strip():
            logger.warning("[%s] Model returned empty content, treating as {}", self.agent_name)
            return AgentResult.success({}, tokens_used=result.tokens_used, latency_ms=result.latency_ms)

        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("[%s] Unparseable model JSON (%s): %.200s", self.agent_name, exc, raw)
            return AgentResult.failure(f"JSON parse error: {exc}", latency_ms=result.latency_ms)

        return AgentResult.success(parsed, tokens_used=result.tokens_used, latency_ms=result.latency_ms)

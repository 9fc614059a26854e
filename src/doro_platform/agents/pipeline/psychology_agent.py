"""Psychology Agent (stage 1): how the lead communicates and how ready they are."""

import json
import logging

from doro_platform.agents.base import AgentResult

from .contracts import ConversationContext, PsychologyProfile
from .fallbacks import fallback_psychology
from .message_signals import analyze_conversation_context, detect_conversation_stage
from .stage import PipelineStage

logger = logging.getLogger(__name__)

HISTORY_TURNS = 5

SYSTEM_INSTRUCTION = (
    "You are an expert real estate lead psychologist. Analyze the lead's communication "
    "patterns, psychological state, and buying readiness to optimize conversion strategies."
)

PSYCHOLOGY_PROMPT_TEMPLATE = """Analyze this Singapore property lead's psychology and communication patterns, paying close attention to conversation continuity.

CURRENT MESSAGE: "{message}"

CONVERSATION HISTORY (last {turns} messages):
{history_ctx}{bot_ctx}

LEAD DATA:
- Source: {source}
- Status: {status}
- Budget: {budget}
- Intent: {intent}

CONVERSATION SO FAR (computed):
{continuity_ctx}

Consider how this message relates to earlier exchanges, what has already been shared,
whether the conversation is advancing or stalling, likely objections and how urgent the
lead's decision is.

Return JSON with exactly these keys:
{{
  "communicationStyle": "direct|polite|hesitant|aggressive|casual",
  "resistancePatterns": ["pattern"],
  "urgencyIndicators": ["indicator"],
  "urgencyScore": 0.0,
  "resistanceLevel": "low|medium|high",
  "buyingSignals": ["signal"],
  "painPoints": ["pain point"],
  "motivationTriggers": ["trigger"],
  "psychologicalProfile": "analytical|emotional|practical|status_conscious",
  "recommendedApproach": "educational|consultative|direct|nurturing",
  "appointmentReadiness": "not_ready|warming_up|ready|very_ready",
  "culturalConsiderations": ["consideration"],
  "nextBestAction": "build_rapport|provide_info|address_objection|book_appointment"
}}
urgencyScore is a number between 0 and 1."""


class PsychologyAgent(PipelineStage[PsychologyProfile]):
    stage_name = "psychology"

    def __init__(self, metrics=None):
        super().__init__(metrics=metrics, temperature=0.3, max_output_tokens=600)

    def build_prompt(self, context: ConversationContext) -> str:
        history = context.history[-HISTORY_TURNS:]
        history_ctx = "\n".join(f"{m.sender}: {m.message}" for m in history) or "No previous conversation"

        recent_bot = [m.message for m in context.history if m.sender == "bot"][-3:]
        bot_ctx = ""
        if recent_bot:
            lines = [f"{i + 1}. {msg}" for i, msg in enumerate(recent_bot)]
            bot_ctx = "\n\nRECENT BOT RESPONSES (avoid repeating these):\n" + "\n".join(lines)

        continuity = analyze_conversation_context(context.history, context.text)
        lead = context.lead_profile

        return PSYCHOLOGY_PROMPT_TEMPLATE.format(
            message=context.text,
            turns=HISTORY_TURNS,
            history_ctx=history_ctx,
            bot_ctx=bot_ctx,
            source=lead.source or "Unknown",
            status=lead.status or "New",
            budget=lead.budget or "Not specified",
            intent=lead.intent or "Unknown",
            continuity_ctx=json.dumps(continuity.to_wire(), indent=2),
        )

    async def produce(self, context: ConversationContext) -> AgentResult:
        result = await self.generate_json(
            prompt=self.build_prompt(context),
            system_instruction=SYSTEM_INSTRUCTION,
        )
        if not result.ok:
            return result

        profile = PsychologyProfile.from_llm(result.data)
        # Stage and continuity are computed locally, never taken from the model
        profile = profile.model_copy(
            update={
                "conversation_stage": detect_conversation_stage(context.history, context.text),
                "conversation_continuity": analyze_conversation_context(context.history, context.text),
                "fallback": False,
            }
        )

        logger.debug(
            "[%s] stage=%s resistance=%s urgency=%.2f readiness=%s",
            self.agent_name,
            profile.conversation_stage,
            profile.resistance_level,
            profile.urgency_score,
            profile.appointment_readiness,
        )
        return AgentResult.success(profile, tokens_used=result.tokens_used, latency_ms=result.latency_ms)

    def fallback(self, context: ConversationContext) -> PsychologyProfile:
        return fallback_psychology()

    async def analyze(self, context: ConversationContext):
        """Run the stage; always returns a ``StageResult[PsychologyProfile]``."""
        return await self.run(context=context)

"""Content Agent (stage 4): writes the reply in Doro's voice.

Floor-plan images are attached from the intelligence package whenever the
strategy asks for them, independent of what the model returns.
"""

import json
import logging
from typing import Optional

from doro_platform.agents.base import AgentResult

from .contracts import (
    DraftContent,
    FloorPlanImage,
    IntelligencePackage,
    LeadProfile,
    PropertyFloorPlans,
    PsychologyProfile,
    Strategy,
)
from .fallbacks import fallback_content
from .stage import PipelineStage

logger = logging.getLogger(__name__)

MAX_IMAGES_PER_PROPERTY = 3
PROMPT_PROPERTIES = 2

DORO_PERSONA = """You are Doro, a 28-year-old Singaporean personal assistant for a curated real estate network.

ROLE:
- You connect clients with experienced human consultants. When a meeting comes up, say you'll
  connect them with one of our consultants.
- Only virtual consultations and agent connections. Never suggest in-person meetups.

PERSONALITY:
- Casual, direct and authentic, like texting a knowledgeable friend.
- Warm but not formal. Confident without being pushy.

CONVERSATION FLOW:
- Acknowledge what the person just said and build on it.
- Never repeat information or questions from recent exchanges.
- Ask at most one question per reply.

LANGUAGE:
- Casual Singaporean English used sparingly ("lah", "lor", "right", "quite").
- No corporate phrases ("Thank you so much", "I understand your concern", "I'd be happy to").
- No em dashes; use a plain dash or restructure.
- At most one or two emoji, only where natural.

HONESTY:
- Only mention prices, availability and dates that appear in the data you are given.
- Never invent scarcity, other buyers or deadlines."""

CONTENT_PROMPT_TEMPLATE = """Write the next WhatsApp reply following the strategy below.

WHAT THE LEAD JUST SAID: "{message}"

CONVERSATION CONTEXT:
- Context Awareness: {context_awareness}
- Previous Topics: {previous_topics}
- Information Already Shared: {information_shared}
- Repetition Risk: {repetition_risk}

STRATEGY:
- Approach: {approach}
- Goal: {goal}
- Appointment Strategy: {appointment_strategy}
- Property Focus: {property_focus}
- Objection Handling: {objection_handling}
- Value Proposition: {value_proposition}
- Next Step: {next_step}

PSYCHOLOGY:
- Communication Style: {communication_style}
- Recommended Approach: {recommended_approach}
- Appointment Readiness: {appointment_readiness}

AVAILABLE PROPERTY DATA:
{property_ctx}

MARKET INTELLIGENCE:
{market_ctx}

LEAD:
- Budget: {budget}
- Intent: {intent}

Return JSON with exactly these keys:
{{
  "message": "the reply, using \\n\\n between paragraphs",
  "tone": "casual|warm|empathetic|direct",
  "appointmentCall": "none|soft|direct",
  "propertyMentions": ["property name"],
  "marketInsights": ["insight"],
  "nextStepSuggestion": "continue_chat|share_insights|natural_consultation",
  "personalizedElements": ["element"],
  "urgencyIndicators": ["indicator"],
  "trustSignals": ["signal"]
}}"""


def prepare_floor_plan_images(
    floor_plans: Optional[list[PropertyFloorPlans]],
) -> list[FloorPlanImage]:
    """Flatten floor-plan bundles into deliverable images, at most 3 per property."""
    images = []
    for bundle in floor_plans or []:
        for plan in bundle.floor_plans[:MAX_IMAGES_PER_PROPERTY]:
            images.append(
                FloorPlanImage(
                    property_name=bundle.property_name,
                    image_url=plan.url,
                    analysis=plan.analysis,
                    id=plan.id,
                )
            )
    return images


class ContentAgent(PipelineStage[DraftContent]):
    stage_name = "content"

    def __init__(self, metrics=None, floor_plan_delivery_enabled: bool = True):
        super().__init__(metrics=metrics, temperature=0.6, max_output_tokens=500)
        self.floor_plan_delivery_enabled = floor_plan_delivery_enabled

    def build_prompt(
        self,
        text: str,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        strategy: Strategy,
        lead: LeadProfile,
    ) -> str:
        continuity = psychology.conversation_continuity

        property_ctx = "\n".join(
            f"- {p.project_name} ({p.district or 'district n/a'}): {p.price_range_label}"
            + (" [verified]" if p.verified else "")
            for p in intelligence.properties[:PROMPT_PROPERTIES]
        ) or "No specific properties found"

        market = intelligence.market_intelligence
        market_ctx = "No market data available"
        if market and strategy.include_market_data:
            market_ctx = "\n".join(f"- {i.title}: {i.snippet}" for i in market.insights) or market_ctx

        return CONTENT_PROMPT_TEMPLATE.format(
            message=text,
            context_awareness=continuity.context_awareness,
            previous_topics=json.dumps(continuity.previous_topics_discussed),
            information_shared=json.dumps(continuity.information_already_shared),
            repetition_risk=continuity.repetition_risk,
            approach=strategy.approach,
            goal=strategy.conversation_goal,
            appointment_strategy=strategy.appointment_strategy,
            property_focus=strategy.property_focus,
            objection_handling=json.dumps(strategy.objection_handling),
            value_proposition=strategy.value_proposition,
            next_step=strategy.next_step_guidance,
            communication_style=psychology.communication_style,
            recommended_approach=psychology.recommended_approach,
            appointment_readiness=psychology.appointment_readiness,
            property_ctx=property_ctx,
            market_ctx=market_ctx,
            budget=lead.budget or "Not specified",
            intent=lead.intent or "Unknown",
        )

    async def produce(
        self,
        text: str,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        strategy: Strategy,
        lead: LeadProfile,
    ) -> AgentResult:
        result = await self.generate_json(
            prompt=self.build_prompt(text, psychology, intelligence, strategy, lead),
            system_instruction=DORO_PERSONA,
        )
        if not result.ok:
            return result

        draft = DraftContent.from_llm(result.data)

        images: list[FloorPlanImage] = []
        if self.floor_plan_delivery_enabled and strategy.include_floor_plans and intelligence.floor_plans:
            images = prepare_floor_plan_images(intelligence.floor_plans)
        draft = draft.model_copy(update={"floor_plan_images": images, "fallback": False})

        logger.debug(
            "[%s] length=%d appointment_call=%s floor_plans=%d",
            self.agent_name,
            len(draft.message),
            draft.appointment_call,
            len(images),
        )
        return AgentResult.success(draft, tokens_used=result.tokens_used, latency_ms=result.latency_ms)

    def fallback(self, **inputs) -> DraftContent:
        return fallback_content()

    async def compose(
        self,
        text: str,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        strategy: Strategy,
        lead: LeadProfile,
    ):
        """Run the stage; always returns a ``StageResult[DraftContent]``."""
        return await self.run(
            text=text,
            psychology=psychology,
            intelligence=intelligence,
            strategy=strategy,
            lead=lead,
        )

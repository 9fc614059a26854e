"""Synthesis Agent (stage 5): validates the draft and produces the final reply.

The model reviews the draft against the strategy and psychology, returns
the final message with quality scores, and decides which floor-plan images
go out. When it flags appointment intent, a consultant briefing is built
locally from the earlier stage outputs.
"""

import json
import logging
from typing import Any

from doro_platform.agents.base import AgentResult

from .contracts import (
    BriefingLeadProfile,
    BriefingRequirements,
    BriefingStrategy,
    ConsultantBriefing,
    DraftContent,
    FinalResponse,
    FloorPlanImage,
    IntelligencePackage,
    LeadProfile,
    PsychologyProfile,
    RecommendedProperty,
    Strategy,
)
from .fallbacks import fallback_synthesis
from .stage import PipelineStage

logger = logging.getLogger(__name__)

BRIEFING_PROPERTIES = 3

SYSTEM_INSTRUCTION = (
    "You are a quality assurance expert for real estate conversations. Validate and improve "
    "replies so they convert well while staying authentic, accurate and culturally appropriate."
)

SYNTHESIS_PROMPT_TEMPLATE = """Validate and improve this reply to a Singapore property lead.

DRAFT REPLY:
"{draft}"

CONVERSATION CONTEXT:
- Context Awareness: {context_awareness}
- Previous Topics: {previous_topics}
- Information Already Shared: {information_shared}

STRATEGY:
- Target Approach: {approach}
- Conversion Priority: {conversion_priority}
- Appointment Strategy: {appointment_strategy}

PSYCHOLOGY FIT:
- Lead Style: {communication_style}
- Resistance Level: {resistance_level}
- Appointment Readiness: {appointment_readiness}

DATA QUALITY:
- Fact-Checked: {fact_checked}
- Data Confidence: {data_confidence}
- Properties Available: {property_count}

FLOOR PLAN IMAGES PREPARED:
{images_ctx}

Check that the reply acknowledges what the lead just said, builds on the previous message,
does not repeat earlier information or questions, uses Doro's casual Singaporean style,
avoids corporate language, and only states facts present in the data above.

Return JSON with exactly these keys:
{{
  "message": "final reply with WhatsApp formatting",
  "qualityScore": 0.0,
  "appointmentIntent": false,
  "factChecked": false,
  "culturallyAppropriate": true,
  "conversionOptimized": false,
  "leadUpdates": {{
    "status": "new|qualified|interested|ready",
    "intent": "own_stay|investment|browsing",
    "budget": "updated budget if mentioned, else null"
  }},
  "floorPlanImages": ["image url to send"],
  "validationNotes": "brief notes",
  "improvementSuggestions": ["suggestion"],
  "confidenceLevel": 0.0
}}
qualityScore and confidenceLevel are numbers between 0 and 1. appointmentIntent is true only
if the lead wants to meet or talk to a consultant."""


def build_consultant_briefing(
    psychology: PsychologyProfile,
    intelligence: IntelligencePackage,
    strategy: Strategy,
    lead: LeadProfile,
) -> ConsultantBriefing:
    """Hand-off notes for the consultant who takes over the appointment."""
    return ConsultantBriefing(
        lead_profile=BriefingLeadProfile(
            communication_style=psychology.communication_style,
            resistance_level=psychology.resistance_level,
            urgency_score=psychology.urgency_score,
            psychological_profile=psychology.psychological_profile,
        ),
        requirements=BriefingRequirements(
            budget=lead.budget,
            intent=lead.intent,
            preferences=list(lead.preferences),
            timeline=lead.timeline,
        ),
        recommended_properties=[
            RecommendedProperty(
                name=p.project_name,
                developer=p.developer,
                price_range=p.price_range_label,
                district=p.district,
                verified=p.verified,
            )
            for p in intelligence.properties[:BRIEFING_PROPERTIES]
        ],
        conversation_strategy=BriefingStrategy(
            approach=strategy.approach,
            objection_handling=list(strategy.objection_handling),
            trust_building_tactics=list(strategy.trust_building_tactics),
        ),
        next_steps=strategy.next_step_guidance,
        conversion_notes=(
            f"Lead shows {psychology.appointment_readiness} readiness for appointment. "
            f"Focus on {strategy.value_proposition}."
        ),
    )


def select_floor_plan_images(selection: Any, prepared: list[FloorPlanImage]) -> list[FloorPlanImage]:
    """Pick the prepared images the model chose to send.

    ``selection`` is the raw ``floorPlanImages`` value. A list keeps the
    prepared images whose URL or id it names; anything else keeps them all.
    """
    if not isinstance(selection, list):
        return list(prepared)
    chosen = {str(item) for item in selection if isinstance(item, (str, int))}
    return [img for img in prepared if img.image_url in chosen or img.id in chosen]


class SynthesisAgent(PipelineStage[FinalResponse]):
    stage_name = "synthesis"

    def __init__(self, metrics=None):
        super().__init__(metrics=metrics, temperature=0.2, max_output_tokens=400)

    def build_prompt(
        self,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        strategy: Strategy,
        draft: DraftContent,
    ) -> str:
        continuity = psychology.conversation_continuity
        images_ctx = "\n".join(
            f"- {img.property_name}: {img.image_url}" for img in draft.floor_plan_images
        ) or "None"
        return SYNTHESIS_PROMPT_TEMPLATE.format(
            draft=draft.message,
            context_awareness=continuity.context_awareness,
            previous_topics=json.dumps(continuity.previous_topics_discussed),
            information_shared=json.dumps(continuity.information_already_shared),
            approach=strategy.approach,
            conversion_priority=strategy.conversion_priority,
            appointment_strategy=strategy.appointment_strategy,
            communication_style=psychology.communication_style,
            resistance_level=psychology.resistance_level,
            appointment_readiness=psychology.appointment_readiness,
            fact_checked=intelligence.fact_check_results is not None,
            data_confidence=intelligence.data_confidence,
            property_count=len(intelligence.properties),
            images_ctx=images_ctx,
        )

    async def produce(
        self,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        strategy: Strategy,
        draft: DraftContent,
        lead: LeadProfile,
    ) -> AgentResult:
        result = await self.generate_json(
            prompt=self.build_prompt(psychology, intelligence, strategy, draft),
            system_instruction=SYSTEM_INSTRUCTION,
        )
        if not result.ok:
            return result

        data = dict(result.data) if isinstance(result.data, dict) else {}
        selection = data.pop("floorPlanImages", None)
        final = FinalResponse.from_llm(data)

        update: dict = {
            "floor_plan_images": select_floor_plan_images(selection, draft.floor_plan_images),
            "fallback": False,
        }
        if not final.message.strip():
            update["message"] = draft.message
        if final.appointment_intent:
            update["consultant_briefing"] = build_consultant_briefing(
                psychology, intelligence, strategy, lead
            )
        final = final.model_copy(update=update)

        logger.debug(
            "[%s] quality=%.2f appointment=%s fact_checked=%s images=%d",
            self.agent_name,
            final.quality_score,
            final.appointment_intent,
            final.fact_checked,
            len(final.floor_plan_images),
        )
        return AgentResult.success(final, tokens_used=result.tokens_used, latency_ms=result.latency_ms)

    def fallback(self, draft: DraftContent | None = None, **inputs) -> FinalResponse:
        return fallback_synthesis(draft)

    async def finalize(
        self,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        strategy: Strategy,
        draft: DraftContent,
        lead: LeadProfile,
    ):
        """Run the stage; always returns a ``StageResult[FinalResponse]``."""
        return await self.run(
            psychology=psychology,
            intelligence=intelligence,
            strategy=strategy,
            draft=draft,
            lead=lead,
        )

"""Fallback outputs, one per stage plus the run-level reply.

Each builder returns the same contract type as the stage's success path,
so downstream stages consume a fallback exactly like a model result.
"""

from .contracts import (
    DraftContent,
    FinalResponse,
    IntelligencePackage,
    PipelineResult,
    PsychologyProfile,
    Strategy,
)

TEMPLATES = {
    "content_greeting": (
        "Hey! Thanks for reaching out. I'm here to help you navigate the Singapore "
        "property market without any pressure lah. What's on your mind about properties right now?"
    ),
    "synthesis_default": (
        "Thanks for your interest! I'll help you find the perfect property. What are you looking for?"
    ),
    "global": (
        "Hey! Got your message. Let me sort this out for you - "
        "I'll be right back with some helpful info."
    ),
}

GLOBAL_FALLBACK_QUALITY = 0.3


def fallback_psychology() -> PsychologyProfile:
    return PsychologyProfile(
        communication_style="polite",
        urgency_score=0.5,
        resistance_level="medium",
        conversation_stage="browsing",
        psychological_profile="practical",
        recommended_approach="educational",
        appointment_readiness="warming_up",
        cultural_considerations=["singapore_context"],
        next_best_action="build_rapport",
        fallback=True,
    )


def fallback_intelligence() -> IntelligencePackage:
    return IntelligencePackage(data_confidence=0.3, fallback=True)


def fallback_strategy() -> Strategy:
    return Strategy(
        approach="educational",
        conversation_goal="build_rapport",
        appointment_strategy="soft_mention",
        property_focus="general_market",
        trust_building_tactics=["market_expertise"],
        value_proposition="expert_guidance",
        urgency_creation="none",
        include_floor_plans=False,
        include_market_data=True,
        next_step_guidance="continue_conversation",
        conversion_priority="medium",
        fallback=True,
    )


def fallback_content() -> DraftContent:
    return DraftContent(
        message=TEMPLATES["content_greeting"],
        tone="warm",
        appointment_call="none",
        next_step_suggestion="continue_chat",
        trust_signals=["authentic_greeting"],
        fallback=True,
    )


def fallback_synthesis(draft: DraftContent | None = None) -> FinalResponse:
    """Pass the draft through unchanged with a neutral quality score."""
    message = draft.message if draft and draft.message else TEMPLATES["synthesis_default"]
    return FinalResponse(
        message=message,
        quality_score=0.5,
        appointment_intent=False,
        fact_checked=False,
        culturally_appropriate=True,
        confidence_level=0.3,
        fallback=True,
    )


def global_fallback(processing_time_ms: int = 0, operation_id: str = "") -> PipelineResult:
    """Run-level reply used when the pipeline itself could not complete."""
    return PipelineResult(
        success=False,
        response=TEMPLATES["global"],
        appointment_intent=False,
        processing_time_ms=processing_time_ms,
        quality_score=GLOBAL_FALLBACK_QUALITY,
        operation_id=operation_id,
        fallback=True,
    )

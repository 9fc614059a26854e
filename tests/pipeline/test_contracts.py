"""Tests for the stage contracts: per-field defaulting and fallback shape."""

import pytest

from doro_platform.agents.pipeline.contracts import (
    ConversationContext,
    DraftContent,
    FactCheckResult,
    FinalResponse,
    IntelligencePackage,
    PsychologyProfile,
    Strategy,
)
from doro_platform.agents.pipeline.fallbacks import (
    GLOBAL_FALLBACK_QUALITY,
    TEMPLATES,
    fallback_content,
    fallback_intelligence,
    fallback_psychology,
    fallback_strategy,
    fallback_synthesis,
    global_fallback,
)


# ---------------------------------------------------------------------------
# Per-field defaulting
# ---------------------------------------------------------------------------

class TestPerFieldDefaulting:
    def test_invalid_enum_takes_default_others_kept(self):
        profile = PsychologyProfile.from_llm(
            {"communicationStyle": "shouty", "resistanceLevel": "high", "urgencyScore": 0.9}
        )

        assert profile.communication_style == "polite"
        assert profile.resistance_level == "high"
        assert profile.urgency_score == 0.9

    def test_scores_are_clamped(self):
        assert PsychologyProfile.from_llm({"urgencyScore": 7}).urgency_score == 1.0
        assert FinalResponse.from_llm({"qualityScore": -2}).quality_score == 0.0

    def test_non_numeric_score_takes_default(self):
        assert FinalResponse.from_llm({"qualityScore": "great"}).quality_score == 0.5

    def test_wrong_list_type_takes_default(self):
        strategy = Strategy.from_llm({"objectionHandling": 42, "approach": "direct"})

        assert strategy.objection_handling == []
        assert strategy.approach == "direct"

    def test_nested_invalid_field_defaults_inside_nested_model(self):
        result = FactCheckResult.from_llm(
            {"confidence": 0.8, "verifiedData": {"priceAccurate": True, "correctedInfo": "nope"}}
        )

        assert result.verified_data.price_accurate is True
        assert result.verified_data.corrected_info.price_range_min is None

    def test_snake_case_keys_accepted(self):
        draft = DraftContent.from_llm({"message": "Hi!", "appointment_call": "soft"})
        assert draft.appointment_call == "soft"

    @pytest.mark.parametrize("data", [None, "not json", ["a", "b"], 3])
    def test_non_dict_content_is_all_defaults(self, data):
        assert Strategy.from_llm(data) == Strategy()

    def test_wire_format_is_camel_case(self):
        wire = DraftContent(message="hey").to_wire()

        assert "appointmentCall" in wire
        assert "floorPlanImages" in wire
        assert "appointment_call" not in wire


class TestConversationContext:
    def test_accepts_camel_case_payload(self):
        context = ConversationContext.model_validate(
            {
                "leadId": "lead-9",
                "text": "hello",
                "history": [{"sender": "bot", "message": "Hi there"}],
                "leadProfile": {"budget": "$2M", "intent": "own_stay"},
            }
        )

        assert context.lead_id == "lead-9"
        assert context.history[0].sender == "bot"
        assert context.lead_profile.budget == "$2M"

    def test_is_immutable(self):
        context = ConversationContext(lead_id="l", text="t")
        with pytest.raises(Exception):
            context.text = "changed"


# ---------------------------------------------------------------------------
# Fallback shapes
# ---------------------------------------------------------------------------

class TestFallbackShapes:
    @pytest.mark.parametrize(
        "fallback,success",
        [
            (fallback_psychology(), PsychologyProfile.from_llm({"communicationStyle": "direct"})),
            (fallback_intelligence(), IntelligencePackage(data_confidence=0.9)),
            (fallback_strategy(), Strategy.from_llm({"approach": "direct"})),
            (fallback_content(), DraftContent.from_llm({"message": "Hello!"})),
            (fallback_synthesis(), FinalResponse.from_llm({"message": "Hello!", "qualityScore": 0.9})),
        ],
    )
    def test_fallback_keys_match_success_keys(self, fallback, success):
        assert set(fallback.to_wire()) == set(success.to_wire())
        assert fallback.fallback is True

    def test_psychology_fallback_values(self):
        profile = fallback_psychology()

        assert profile.communication_style == "polite"
        assert profile.urgency_score == 0.5
        assert profile.conversation_stage == "browsing"
        assert profile.cultural_considerations == ["singapore_context"]

    def test_intelligence_fallback_is_empty_low_confidence(self):
        package = fallback_intelligence()

        assert package.properties == []
        assert package.data_confidence == 0.3
        assert package.fact_check_results is None

    def test_strategy_fallback_values(self):
        strategy = fallback_strategy()

        assert strategy.appointment_strategy == "soft_mention"
        assert strategy.trust_building_tactics == ["market_expertise"]
        assert strategy.include_market_data is True

    def test_content_fallback_is_greeting(self):
        draft = fallback_content()

        assert draft.message == TEMPLATES["content_greeting"]
        assert draft.appointment_call == "none"
        assert draft.trust_signals == ["authentic_greeting"]

    def test_synthesis_fallback_passes_draft_through(self):
        final = fallback_synthesis(DraftContent(message="Draft reply"))

        assert final.message == "Draft reply"
        assert final.quality_score == 0.5
        assert final.confidence_level == 0.3
        assert final.appointment_intent is False

    def test_synthesis_fallback_without_draft(self):
        assert fallback_synthesis().message == TEMPLATES["synthesis_default"]

    def test_global_fallback(self):
        result = global_fallback(processing_time_ms=120, operation_id="op")

        assert result.success is False
        assert result.quality_score == GLOBAL_FALLBACK_QUALITY == 0.3
        assert result.appointment_intent is False
        assert result.consultant_briefing is None
        assert result.floor_plan_images == []
        assert result.response == TEMPLATES["global"]

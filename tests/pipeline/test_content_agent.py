"""Tests for ContentAgent: reply drafting and floor-plan attachment."""

from unittest.mock import AsyncMock, patch

from doro_platform.agents.base import AgentResult
from doro_platform.agents.pipeline.content_agent import (
    DORO_PERSONA,
    ContentAgent,
    prepare_floor_plan_images,
)
from doro_platform.agents.pipeline.contracts import (
    FloorPlan,
    IntelligencePackage,
    LeadProfile,
    PropertyFloorPlans,
    PropertyRecord,
    PsychologyProfile,
    Strategy,
)
from doro_platform.agents.pipeline.fallbacks import TEMPLATES


_GENERATE = "doro_platform.agents.pipeline.content_agent.ContentAgent.generate_json"


def _bundle(name, count):
    return PropertyFloorPlans(
        property_name=name,
        floor_plans=[FloorPlan(id=f"{name}-{i}", url=f"https://cdn.test/{name}/{i}.png") for i in range(count)],
    )


def _intel_with_plans():
    return IntelligencePackage(
        properties=[PropertyRecord(project_name="Lentor Mansion", price_range_min=1.2e6, price_range_max=2.4e6)],
        floor_plans=[_bundle("Lentor Mansion", 4), _bundle("Lentor Hills", 1)],
    )


async def _compose(agent, strategy, intelligence=None):
    return await agent.compose(
        "Can I see the floor plans?",
        PsychologyProfile(),
        intelligence or _intel_with_plans(),
        strategy,
        LeadProfile(budget="$2M"),
    )


class TestPrepareFloorPlanImages:
    def test_caps_three_per_property(self):
        images = prepare_floor_plan_images([_bundle("A", 5), _bundle("B", 2)])

        assert [img.property_name for img in images] == ["A", "A", "A", "B", "B"]
        assert images[0].image_url == "https://cdn.test/A/0.png"
        assert images[0].id == "A-0"

    def test_none_is_empty(self):
        assert prepare_floor_plan_images(None) == []


class TestContentAgent:
    async def test_attaches_floor_plans_when_strategy_requests(self):
        llm = AgentResult.success({"message": "Here are the layouts!", "tone": "casual"})

        with patch(_GENERATE, new_callable=AsyncMock, return_value=llm) as mock_llm:
            result = await _compose(ContentAgent(), Strategy(include_floor_plans=True))

        draft = result.data
        assert result.ok
        assert draft.message == "Here are the layouts!"
        assert len(draft.floor_plan_images) == 4
        assert mock_llm.await_args.kwargs["system_instruction"] == DORO_PERSONA

    async def test_model_images_are_ignored(self):
        llm = AgentResult.success(
            {"message": "hi", "floorPlanImages": [{"imageUrl": "https://evil.test/x.png"}]}
        )

        with patch(_GENERATE, new_callable=AsyncMock, return_value=llm):
            result = await _compose(ContentAgent(), Strategy(include_floor_plans=False))

        assert result.data.floor_plan_images == []

    async def test_delivery_disabled(self):
        llm = AgentResult.success({"message": "hi"})

        with patch(_GENERATE, new_callable=AsyncMock, return_value=llm):
            result = await _compose(
                ContentAgent(floor_plan_delivery_enabled=False), Strategy(include_floor_plans=True)
            )

        assert result.data.floor_plan_images == []

    def test_prompt_lists_properties(self):
        agent = ContentAgent()
        prompt = agent.build_prompt(
            "hi", PsychologyProfile(), _intel_with_plans(), Strategy(), LeadProfile()
        )

        assert "Lentor Mansion (district n/a): $1,200,000 - $2,400,000" in prompt
        assert "No market data available" in prompt

    async def test_llm_failure_returns_greeting(self):
        with patch(_GENERATE, new_callable=AsyncMock, return_value=AgentResult.failure("timeout")):
            result = await _compose(ContentAgent(), Strategy(include_floor_plans=True))

        assert not result.ok
        assert result.data.message == TEMPLATES["content_greeting"]
        assert result.data.tone == "warm"
        assert result.data.floor_plan_images == []

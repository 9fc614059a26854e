"""Typed contracts for the five-stage reply pipeline.

Every stage output is a pydantic model whose fields all carry defaults.
Model JSON is validated field by field: a missing or malformed field takes
its default instead of invalidating the whole object, so a stage's success
output and its fallback output always share the same key set.

Attributes are snake_case in Python; the wire form (prompts, model
responses, ``layer_results``, HTTP) is camelCase.
"""

from dataclasses import dataclass
from datetime import date
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


# Float forced into [0, 1]
Score = Annotated[float, AfterValidator(_clamp_unit)]


class CamelModel(BaseModel):
    """Base model with camelCase aliases for the wire format."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )

    def to_wire(self) -> dict:
        """Dump to a JSON-safe camelCase dict."""
        return self.model_dump(mode="json", by_alias=True)


class StageContract(CamelModel):
    """Base for stage outputs: invalid fields fall back to their defaults."""

    @field_validator("*", mode="wrap")
    @classmethod
    def _default_invalid_field(cls, value, handler, info: ValidationInfo):
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)

    @classmethod
    def from_llm(cls, data: Any):
        """Build the contract from parsed model JSON (anything non-dict is ``{}``)."""
        if not isinstance(data, dict):
            data = {}
        return cls.model_validate(data)


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------


class HistoryMessage(CamelModel):
    """One prior message; ``sender`` is ``lead`` or ``bot``."""

    sender: str = "lead"
    message: str = ""
    timestamp: Optional[str] = None


class LeadProfile(CamelModel):
    source: Optional[str] = None
    status: Optional[str] = None
    budget: Optional[str] = None
    intent: Optional[str] = None
    preferences: list[str] = Field(default_factory=list)
    timeline: Optional[str] = None


class ConversationContext(CamelModel):
    """Immutable input for one pipeline run."""

    model_config = ConfigDict(frozen=True)

    lead_id: str
    text: str
    sender_id: str = ""
    sender_name: Optional[str] = None
    history: list[HistoryMessage] = Field(default_factory=list)
    lead_profile: LeadProfile = Field(default_factory=LeadProfile)


# ---------------------------------------------------------------------------
# Stage 1: psychology
# ---------------------------------------------------------------------------

CommunicationStyle = Literal["direct", "polite", "hesitant", "aggressive", "casual"]
Level = Literal["low", "medium", "high"]
ConversationStage = Literal["initial", "browsing", "interested", "qualified", "objecting"]
AppointmentReadiness = Literal["not_ready", "warming_up", "ready", "very_ready"]
Approach = Literal["educational", "consultative", "direct", "nurturing"]


class ConversationContinuity(StageContract):
    previous_topics_discussed: list[str] = Field(default_factory=list)
    information_already_shared: list[str] = Field(default_factory=list)
    questions_already_asked: list[str] = Field(default_factory=list)
    conversation_progression: Literal["initial", "advancing", "stalling", "steady"] = "initial"
    repetition_risk: Level = "low"
    context_awareness: str = "First interaction"


class PsychologyProfile(StageContract):
    communication_style: CommunicationStyle = "polite"
    resistance_patterns: list[str] = Field(default_factory=list)
    urgency_indicators: list[str] = Field(default_factory=list)
    urgency_score: Score = 0.5
    resistance_level: Level = "medium"
    buying_signals: list[str] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    motivation_triggers: list[str] = Field(default_factory=list)
    conversation_stage: ConversationStage = "browsing"
    psychological_profile: Literal["analytical", "emotional", "practical", "status_conscious"] = "practical"
    recommended_approach: Approach = "educational"
    appointment_readiness: AppointmentReadiness = "warming_up"
    cultural_considerations: list[str] = Field(default_factory=list)
    next_best_action: Literal[
        "build_rapport", "provide_info", "address_objection", "book_appointment"
    ] = "build_rapport"
    conversation_continuity: ConversationContinuity = Field(default_factory=ConversationContinuity)
    fallback: bool = False


# ---------------------------------------------------------------------------
# Stage 2: intelligence
# ---------------------------------------------------------------------------


class PriceRange(CamelModel):
    min: float
    max: float


class CatalogFilters(CamelModel):
    """Filters derived from the inbound message and lead profile."""

    district: Optional[str] = None
    property_type: Optional[str] = None
    price_range: Optional[PriceRange] = None
    bedrooms: Optional[int] = None


class VisualAnalysisRecord(StageContract):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    analysis_type: str = "floor_plan_analysis"
    confidence_score: Optional[float] = None
    room_count: Optional[int] = None
    layout_type: Optional[str] = None
    square_footage: Optional[int] = None
    key_features: list[str] = Field(default_factory=list)
    summary: Optional[str] = None


class VisualAssetRecord(StageContract):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    asset_type: str = "image"
    public_url: Optional[str] = None
    ai_visual_analysis: list[VisualAnalysisRecord] = Field(default_factory=list)


class UnitMixRecord(StageContract):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    unit_type: str = ""
    bedrooms: Optional[int] = None
    size_min_sqft: Optional[int] = None
    size_max_sqft: Optional[int] = None
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    units_available: Optional[int] = None


class CorrectedInfo(StageContract):
    price_range_min: Optional[float] = None
    price_range_max: Optional[float] = None
    actual_developer: Optional[str] = None
    actual_launch_date: Optional[str] = None
    actual_top_date: Optional[str] = None


class VerifiedData(StageContract):
    price_accurate: bool = False
    developer_accurate: bool = False
    launch_date_accurate: bool = False
    top_date_accurate: bool = False
    corrected_info: CorrectedInfo = Field(default_factory=CorrectedInfo)


class PropertyRecord(StageContract):
    """Catalog record plus its verification outcome."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    project_name: str = ""
    developer: Optional[str] = None
    address: Optional[str] = None
    district: Optional[str] = None
    property_type: Optional[str] = None
    tenure: Optional[str] = None
    price_range_min: Optional[float] = None
    price_range_max: Optional[float] = None
    sales_status: str = "Available"
    launch_date: Optional[date] = None
    top_date: Optional[date] = None
    completion_status: Optional[str] = None
    unit_mix: list[UnitMixRecord] = Field(default_factory=list)
    visual_assets: list[VisualAssetRecord] = Field(default_factory=list)
    verified: bool = False
    confidence: Optional[Score] = None
    fact_check_data: Optional[VerifiedData] = None

    @property
    def price_range_label(self) -> str:
        low = f"${self.price_range_min:,.0f}" if self.price_range_min is not None else "$?"
        high = f"${self.price_range_max:,.0f}" if self.price_range_max is not None else "$?"
        return f"{low} - {high}"


class SearchSnippet(StageContract):
    model_config = ConfigDict(from_attributes=True)

    title: str = ""
    snippet: str = ""
    url: str = ""
    display_link: str = ""
    relevance_score: Score = 0.5


class FactCheckResult(StageContract):
    property_id: Optional[str] = None
    project_name: str = ""
    confidence: Score = 0.3
    verified_data: Optional[VerifiedData] = None
    summary: str = ""
    discrepancies: list[str] = Field(default_factory=list)
    additional_info: str = ""
    search_query: str = ""
    search_results: list[SearchSnippet] = Field(default_factory=list)


class MarketIntelligence(StageContract):
    query: str = ""
    insights: list[SearchSnippet] = Field(default_factory=list)
    timestamp: str = ""
    source: str = "web_search"


class FloorPlan(StageContract):
    id: Optional[str] = None
    url: Optional[str] = None
    analysis: Optional[VisualAnalysisRecord] = None


class PropertyFloorPlans(StageContract):
    property_name: str = ""
    floor_plans: list[FloorPlan] = Field(default_factory=list)


class IntelligencePackage(StageContract):
    properties: list[PropertyRecord] = Field(default_factory=list)
    search_criteria: CatalogFilters = Field(default_factory=CatalogFilters)
    fact_check_results: Optional[list[FactCheckResult]] = None
    data_confidence: Score = 0.5
    market_intelligence: Optional[MarketIntelligence] = None
    floor_plans: Optional[list[PropertyFloorPlans]] = None
    fallback: bool = False


# ---------------------------------------------------------------------------
# Stage 3: strategy
# ---------------------------------------------------------------------------

AppointmentStrategy = Literal["none", "soft_mention", "direct_offer", "urgent_booking"]
ConversationGoal = Literal["build_rapport", "qualify_lead", "provide_info", "book_appointment"]


class Strategy(StageContract):
    approach: Approach = "educational"
    conversation_goal: ConversationGoal = "build_rapport"
    appointment_strategy: AppointmentStrategy = "soft_mention"
    property_focus: Literal[
        "general_market", "specific_properties", "price_comparison", "investment_analysis"
    ] = "general_market"
    objection_handling: list[str] = Field(default_factory=list)
    trust_building_tactics: list[str] = Field(default_factory=list)
    value_proposition: Literal[
        "market_insights", "exclusive_properties", "expert_guidance", "time_saving"
    ] = "expert_guidance"
    urgency_creation: Literal["limited_availability", "market_timing", "exclusive_access", "none"] = "none"
    include_floor_plans: bool = False
    include_market_data: bool = True
    personalized_elements: list[str] = Field(default_factory=list)
    next_step_guidance: Literal[
        "continue_conversation", "schedule_call", "send_info", "follow_up"
    ] = "continue_conversation"
    conversion_priority: Literal["low", "medium", "high", "urgent"] = "medium"
    reasoning: str = ""
    psychology_alignment: Score = 0.0
    refined: bool = False
    fallback: bool = False


# ---------------------------------------------------------------------------
# Stage 4: content
# ---------------------------------------------------------------------------


class FloorPlanImage(StageContract):
    property_name: str = ""
    image_url: Optional[str] = None
    analysis: Optional[VisualAnalysisRecord] = None
    id: Optional[str] = None


class DraftContent(StageContract):
    message: str = ""
    tone: Literal["casual", "warm", "empathetic", "direct"] = "warm"
    appointment_call: Literal["none", "soft", "direct"] = "none"
    property_mentions: list[str] = Field(default_factory=list)
    market_insights: list[str] = Field(default_factory=list)
    next_step_suggestion: str = "continue_chat"
    personalized_elements: list[str] = Field(default_factory=list)
    urgency_indicators: list[str] = Field(default_factory=list)
    trust_signals: list[str] = Field(default_factory=list)
    floor_plan_images: list[FloorPlanImage] = Field(default_factory=list)
    fallback: bool = False


# ---------------------------------------------------------------------------
# Stage 5: synthesis
# ---------------------------------------------------------------------------


class LeadUpdates(StageContract):
    status: Optional[str] = None
    intent: Optional[str] = None
    budget: Optional[str] = None


class BriefingLeadProfile(StageContract):
    communication_style: str = ""
    resistance_level: str = ""
    urgency_score: float = 0.0
    psychological_profile: str = ""


class BriefingRequirements(StageContract):
    budget: Optional[str] = None
    intent: Optional[str] = None
    preferences: list[str] = Field(default_factory=list)
    timeline: Optional[str] = None


class RecommendedProperty(StageContract):
    name: str = ""
    developer: Optional[str] = None
    price_range: str = ""
    district: Optional[str] = None
    verified: bool = False


class BriefingStrategy(StageContract):
    approach: str = ""
    objection_handling: list[str] = Field(default_factory=list)
    trust_building_tactics: list[str] = Field(default_factory=list)


class ConsultantBriefing(StageContract):
    """Hand-off notes for the human consultant when a lead wants to meet."""

    lead_profile: BriefingLeadProfile = Field(default_factory=BriefingLeadProfile)
    requirements: BriefingRequirements = Field(default_factory=BriefingRequirements)
    recommended_properties: list[RecommendedProperty] = Field(default_factory=list)
    conversation_strategy: BriefingStrategy = Field(default_factory=BriefingStrategy)
    next_steps: str = ""
    conversion_notes: str = ""


class FinalResponse(StageContract):
    message: str = ""
    quality_score: Score = 0.5
    appointment_intent: bool = False
    fact_checked: bool = False
    culturally_appropriate: bool = True
    conversion_optimized: bool = False
    lead_updates: LeadUpdates = Field(default_factory=LeadUpdates)
    floor_plan_images: list[FloorPlanImage] = Field(default_factory=list)
    validation_notes: str = ""
    improvement_suggestions: list[str] = Field(default_factory=list)
    consultant_briefing: Optional[ConsultantBriefing] = None
    confidence_level: Score = 0.5
    fallback: bool = False


# ---------------------------------------------------------------------------
# Run-level results
# ---------------------------------------------------------------------------

T = TypeVar("T")


@dataclass
class StageResult(Generic[T]):
    """Outcome of one stage: always carries schema-valid ``data``.

    ``ok`` is False when ``data`` is the stage's fallback. ``error`` holds
    the reason the stage fell back.
    """

    stage: str
    data: T
    ok: bool = True
    error: Optional[str] = None
    duration_ms: int = 0

    @property
    def fallback(self) -> bool:
        return not self.ok

    @classmethod
    def success(cls, stage: str, data: T, duration_ms: int = 0) -> "StageResult[T]":
        return cls(stage=stage, data=data, ok=True, duration_ms=duration_ms)

    @classmethod
    def degraded(cls, stage: str, data: T, error: str, duration_ms: int = 0) -> "StageResult[T]":
        return cls(stage=stage, data=data, ok=False, error=error, duration_ms=duration_ms)


class LeadInterest(CamelModel):
    """Structured interest captured for the lead store."""

    property_type: Optional[str] = None
    district: Optional[str] = None
    bedrooms: Optional[int] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    property_names: list[str] = Field(default_factory=list)


class PipelineResult(CamelModel):
    """Return value of ``PipelineOrchestrator.process_message``."""

    success: bool
    response: str
    appointment_intent: bool = False
    floor_plan_images: list[FloorPlanImage] = Field(default_factory=list)
    lead_updates: LeadUpdates = Field(default_factory=LeadUpdates)
    consultant_briefing: Optional[ConsultantBriefing] = None
    processing_time_ms: int = 0
    quality_score: float = 0.0
    layer_results: dict[str, dict] = Field(default_factory=dict)
    lead_interests: list[LeadInterest] = Field(default_factory=list)
    operation_id: str = ""
    fallback: bool = False

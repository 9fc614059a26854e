"""Strategy Agent (stage 3): plans the reply from the psychology and intelligence outputs.

After the model proposes a strategy it is scored against the psychology
profile. Strategies scoring below ``ALIGNMENT_THRESHOLD`` are refined,
first by a second model call and, if that fails, by fixed rules.
"""

import json
import logging

from doro_platform.agents.base import AgentResult

from .contracts import IntelligencePackage, LeadProfile, PsychologyProfile, Strategy
from .fallbacks import fallback_strategy
from .stage import PipelineStage

logger = logging.getLogger(__name__)

ALIGNMENT_THRESHOLD = 0.6

ASSERTIVE_STRATEGIES = ("direct_offer", "urgent_booking")

READINESS_STRATEGY = {
    "very_ready": "urgent_booking",
    "ready": "direct_offer",
    "warming_up": "soft_mention",
    "not_ready": "none",
}

SYSTEM_INSTRUCTION = (
    "You are a strategic real estate conversation planner. Create conversation strategies "
    "that guide leads toward booking a consultation while building trust and providing value."
)

STRATEGY_PROMPT_TEMPLATE = """Plan the next reply for a Singapore property lead. Base the appointment strategy on the psychology analysis and make the reply build on the previous exchange.

PSYCHOLOGY INSIGHTS:
- Communication Style: {communication_style}
- Resistance Level: {resistance_level}
- Urgency Score: {urgency_score}
- Appointment Readiness: {appointment_readiness}
- Recommended Approach: {recommended_approach}
- Next Best Action: {next_best_action}

CONVERSATION CONTINUITY:
- Previous Topics: {previous_topics}
- Information Already Shared: {information_shared}
- Questions Already Asked: {questions_asked}
- Conversation Progression: {progression}
- Repetition Risk: {repetition_risk}
- Context Awareness: {context_awareness}

INTELLIGENCE DATA:
- Properties Found: {property_count}
- Data Confidence: {data_confidence}
- Fact-Checked: {fact_checked}
- Market Intelligence: {has_market}
- Floor Plans Available: {has_floor_plans}

LEAD DATA:
- Status: {status}
- Budget: {budget}
- Intent: {intent}
- Source: {source}

Guidelines:
- If repetition risk is high, change topic or angle.
- If the conversation is stalling, bring new information.
- Match assertiveness to readiness: very_ready -> urgent_booking, ready -> direct_offer,
  warming_up -> soft_mention, not_ready -> none. High resistance means no direct offer.
- urgent_booking and direct_offer go with the book_appointment goal.

Return JSON with exactly these keys:
{{
  "approach": "educational|consultative|direct|nurturing",
  "conversationGoal": "build_rapport|qualify_lead|provide_info|book_appointment",
  "appointmentStrategy": "none|soft_mention|direct_offer|urgent_booking",
  "propertyFocus": "general_market|specific_properties|price_comparison|investment_analysis",
  "objectionHandling": ["anticipated objection"],
  "trustBuildingTactics": ["tactic"],
  "valueProposition": "market_insights|exclusive_properties|expert_guidance|time_saving",
  "urgencyCreation": "limited_availability|market_timing|exclusive_access|none",
  "includeFloorPlans": false,
  "includeMarketData": true,
  "personalizedElements": ["element"],
  "nextStepGuidance": "continue_conversation|schedule_call|send_info|follow_up",
  "conversionPriority": "low|medium|high|urgent",
  "reasoning": "why this strategy fits the psychology and the conversation so far"
}}"""

REFINEMENT_PROMPT_TEMPLATE = """This strategy does not fit the lead's psychology. Refine it.

PSYCHOLOGY ANALYSIS:
- Appointment Readiness: {appointment_readiness}
- Resistance Level: {resistance_level}
- Urgency Score: {urgency_score}

ORIGINAL STRATEGY:
{strategy_json}

REFINEMENT RULES:
- appointmentReadiness "very_ready" and resistanceLevel "low" -> "urgent_booking"
- appointmentReadiness "ready" and urgencyScore > 0.7 -> "direct_offer"
- appointmentReadiness "warming_up" -> "soft_mention"
- resistanceLevel "high" -> "none" (build trust first)

Keep every other field. Fix appointmentStrategy and conversationGoal.
Return the refined strategy as JSON with the same keys."""


# ---------------------------------------------------------------------------
# Alignment scoring
# ---------------------------------------------------------------------------


def alignment_score(psychology: PsychologyProfile, strategy: Strategy) -> float:
    """Score (0-1) how well the appointment strategy fits the lead's psychology."""
    appointment = strategy.appointment_strategy
    score = 0.0

    if READINESS_STRATEGY.get(psychology.appointment_readiness) == appointment:
        score += 0.3

    resistance = psychology.resistance_level
    if (
        (resistance == "high" and appointment == "none")
        or (resistance == "low" and appointment in ASSERTIVE_STRATEGIES)
        or (resistance == "medium" and appointment == "soft_mention")
    ):
        score += 0.2

    if psychology.urgency_score > 0.7 and appointment in ASSERTIVE_STRATEGIES:
        score += 0.2
    elif psychology.urgency_score < 0.3 and appointment != "urgent_booking":
        score += 0.1

    goal = strategy.conversation_goal
    if (
        (appointment in ASSERTIVE_STRATEGIES and goal == "book_appointment")
        or (appointment == "soft_mention" and goal in ("qualify_lead", "provide_info"))
        or (appointment == "none" and goal == "build_rapport")
    ):
        score += 0.2

    if resistance == "high" and appointment in ASSERTIVE_STRATEGIES:
        score -= 0.3

    return max(0.0, min(1.0, round(score, 4)))


def apply_rule_based_refinement(psychology: PsychologyProfile, strategy: Strategy) -> Strategy:
    readiness = psychology.appointment_readiness
    if readiness == "very_ready" and psychology.resistance_level == "low":
        update = {"appointment_strategy": "urgent_booking", "conversation_goal": "book_appointment"}
    elif readiness == "ready" and psychology.urgency_score > 0.7:
        update = {"appointment_strategy": "direct_offer", "conversation_goal": "book_appointment"}
    elif readiness == "warming_up":
        update = {"appointment_strategy": "soft_mention", "conversation_goal": "qualify_lead"}
    elif psychology.resistance_level == "high":
        update = {"appointment_strategy": "none", "conversation_goal": "build_rapport"}
    else:
        update = {}
    return strategy.model_copy(update=update)


class StrategyAgent(PipelineStage[Strategy]):
    stage_name = "strategy"

    def __init__(self, metrics=None):
        super().__init__(metrics=metrics, temperature=0.4, max_output_tokens=800)

    def build_prompt(
        self,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        lead: LeadProfile,
    ) -> str:
        continuity = psychology.conversation_continuity
        return STRATEGY_PROMPT_TEMPLATE.format(
            communication_style=psychology.communication_style,
            resistance_level=psychology.resistance_level,
            urgency_score=psychology.urgency_score,
            appointment_readiness=psychology.appointment_readiness,
            recommended_approach=psychology.recommended_approach,
            next_best_action=psychology.next_best_action,
            previous_topics=json.dumps(continuity.previous_topics_discussed),
            information_shared=json.dumps(continuity.information_already_shared),
            questions_asked=json.dumps(continuity.questions_already_asked),
            progression=continuity.conversation_progression,
            repetition_risk=continuity.repetition_risk,
            context_awareness=continuity.context_awareness,
            property_count=len(intelligence.properties),
            data_confidence=intelligence.data_confidence,
            fact_checked=intelligence.fact_check_results is not None,
            has_market=intelligence.market_intelligence is not None,
            has_floor_plans=intelligence.floor_plans is not None,
            status=lead.status or "Unknown",
            budget=lead.budget or "Not specified",
            intent=lead.intent or "Unknown",
            source=lead.source or "Unknown",
        )

    async def produce(
        self,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        lead: LeadProfile,
    ) -> AgentResult:
        result = await self.generate_json(
            prompt=self.build_prompt(psychology, intelligence, lead),
            system_instruction=SYSTEM_INSTRUCTION,
        )
        if not result.ok:
            return result

        strategy = Strategy.from_llm(result.data)
        score = alignment_score(psychology, strategy)

        if score < ALIGNMENT_THRESHOLD:
            logger.warning(
                "[%s] Low psychology alignment (%.2f), refining strategy", self.agent_name, score
            )
            strategy = await self.refine(psychology, strategy)
            score = alignment_score(psychology, strategy)
            strategy = strategy.model_copy(update={"refined": True})

        strategy = strategy.model_copy(update={"psychology_alignment": score, "fallback": False})

        logger.debug(
            "[%s] approach=%s appointment=%s focus=%s alignment=%.2f refined=%s",
            self.agent_name,
            strategy.approach,
            strategy.appointment_strategy,
            strategy.property_focus,
            score,
            strategy.refined,
        )
        return AgentResult.success(strategy, tokens_used=result.tokens_used, latency_ms=result.latency_ms)

    async def refine(self, psychology: PsychologyProfile, strategy: Strategy) -> Strategy:
        """Ask the model to fix the appointment strategy; rules apply if it cannot."""
        prompt = REFINEMENT_PROMPT_TEMPLATE.format(
            appointment_readiness=psychology.appointment_readiness,
            resistance_level=psychology.resistance_level,
            urgency_score=psychology.urgency_score,
            strategy_json=json.dumps(strategy.to_wire(), indent=2),
        )
        result = await self.generate_json(prompt=prompt, temperature=0.3)
        if not result.ok or not isinstance(result.data, dict) or not result.data:
            logger.warning(
                "[%s] Strategy refinement failed, applying rules: %s", self.agent_name, result.error
            )
            return apply_rule_based_refinement(psychology, strategy)

        return Strategy.from_llm({**strategy.to_wire(), **result.data})

    def fallback(self, psychology=None, intelligence=None, lead=None) -> Strategy:
        return fallback_strategy()

    async def plan(
        self,
        psychology: PsychologyProfile,
        intelligence: IntelligencePackage,
        lead: LeadProfile,
    ):
        """Run the stage; always returns a ``StageResult[Strategy]``."""
        return await self.run(psychology=psychology, intelligence=intelligence, lead=lead)

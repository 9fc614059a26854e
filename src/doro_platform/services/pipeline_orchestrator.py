"""Pipeline Orchestrator: coordinates the 5-stage reply pipeline.

1. Psychology (lead communication style + readiness)
2. Intelligence (catalog, fact checks, market data, floor plans)
3. Strategy (reply plan aligned to the psychology)
4. Content (draft reply in Doro's voice)
5. Synthesis (validation, final reply, consultant briefing)

Stages run strictly in order. Each stage returns a ``StageResult`` that
always carries schema-valid data, so one failing stage never stops the
run. The whole sequence is bounded by ``pipeline_timeout_seconds``; a
timeout, any uncaught error, or a run where every model stage fell back
with no catalog or market data yields the global fallback reply.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from doro_platform.agents.pipeline.contracts import (
    ConversationContext,
    DraftContent,
    FinalResponse,
    IntelligencePackage,
    LeadInterest,
    PipelineResult,
    PsychologyProfile,
    StageResult,
    Strategy,
)
from doro_platform.app.config import Settings, get_settings
from doro_platform.services.pipeline_monitor import MetricsSink, ProcessingOutcome

logger = logging.getLogger(__name__)

QUALIFIED_QUALITY = 0.7

# Stages whose output comes from the model; intelligence is data-backed
MODEL_STAGES = ("psychology", "strategy", "content", "synthesis")


@dataclass
class PipelineRun:
    """Bookkeeping for one ``process_message`` call."""
    operation_id: str
    started_at: float
    stages: list[StageResult] = field(default_factory=list)

    @property
    def elapsed_ms(self) -> int:
        return int((time.time() - self.started_at) * 1000)

    @property
    def any_fallback(self) -> bool:
        return any(s.fallback for s in self.stages)

    def exhausted(self, intelligence: IntelligencePackage) -> bool:
        """True when every model stage fell back and stage 2 found nothing."""
        model_stages = [s for s in self.stages if s.stage in MODEL_STAGES]
        if not model_stages or not all(s.fallback for s in model_stages):
            return False
        return not (
            intelligence.properties
            or intelligence.market_intelligence
            or intelligence.floor_plans
        )


def extract_lead_interests(intelligence: IntelligencePackage) -> list[LeadInterest]:
    """Structured interest from the catalog filters and the properties found."""
    criteria = intelligence.search_criteria
    names = [p.project_name for p in intelligence.properties if p.project_name]
    price_range = criteria.price_range

    if not (criteria.property_type or criteria.district or criteria.bedrooms or price_range or names):
        return []

    return [
        LeadInterest(
            property_type=criteria.property_type,
            district=criteria.district,
            bedrooms=criteria.bedrooms,
            budget_min=price_range.min if price_range else None,
            budget_max=price_range.max if price_range else None,
            property_names=names,
        )
    ]


class PipelineOrchestrator:
    """Runs one inbound message through the five stages.

    Collaborators are injected: ``catalog`` (``find_properties``),
    ``search`` (``search``), and ``metrics`` (a ``MetricsSink``).
    """

    def __init__(
        self,
        catalog,
        search=None,
        metrics: Optional[MetricsSink] = None,
        settings: Optional[Settings] = None,
    ):
        self.catalog = catalog
        self.search = search
        self.metrics = metrics
        self.settings = settings or get_settings()

    async def process_message(self, context: ConversationContext) -> PipelineResult:
        """Run the full pipeline; always returns a well-formed ``PipelineResult``."""
        run = PipelineRun(operation_id=uuid.uuid4().hex, started_at=time.time())
        logger.info(
            "[%s] Processing message for lead %s (%d history messages)",
            run.operation_id,
            context.lead_id,
            len(context.history),
        )

        try:
            result = await asyncio.wait_for(
                self._run_stages(context, run),
                timeout=self.settings.pipeline_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "[%s] Pipeline exceeded %.0fs budget, using global fallback",
                run.operation_id,
                self.settings.pipeline_timeout_seconds,
            )
            result = None
        except Exception:
            logger.exception("[%s] Pipeline failed, using global fallback", run.operation_id)
            result = None

        if result is None:
            from doro_platform.agents.pipeline.fallbacks import global_fallback

            result = global_fallback(processing_time_ms=run.elapsed_ms, operation_id=run.operation_id)
            await self._record(
                ProcessingOutcome(
                    success=False,
                    processing_time_ms=result.processing_time_ms,
                    fallback_used=True,
                ),
                run.operation_id,
            )
            return result

        logger.info(
            "[%s] Completed in %dms: quality=%.2f appointment=%s fallbacks=%s",
            run.operation_id,
            result.processing_time_ms,
            result.quality_score,
            result.appointment_intent,
            [s.stage for s in run.stages if s.fallback],
        )
        return result

    async def _run_stages(self, context: ConversationContext, run: PipelineRun) -> Optional[PipelineResult]:
        from doro_platform.agents.pipeline.psychology_agent import PsychologyAgent
        from doro_platform.agents.pipeline.fact_verifier import FactVerifier
        from doro_platform.agents.pipeline.intelligence_agent import IntelligenceAgent
        from doro_platform.agents.pipeline.strategy_agent import StrategyAgent
        from doro_platform.agents.pipeline.content_agent import ContentAgent
        from doro_platform.agents.pipeline.synthesis_agent import SynthesisAgent

        settings = self.settings
        lead = context.lead_profile

        # == 1. Psychology ==
        psychology_result: StageResult[PsychologyProfile] = await PsychologyAgent(
            metrics=self.metrics
        ).analyze(context)
        run.stages.append(psychology_result)
        psychology = psychology_result.data

        # == 2. Intelligence ==
        verifier = FactVerifier(
            self.search,
            mode=settings.fact_check_mode,
            max_checks=settings.fact_check_max_properties,
        )
        intelligence_result: StageResult[IntelligencePackage] = await IntelligenceAgent(
            catalog=self.catalog,
            search=self.search,
            verifier=verifier,
            metrics=self.metrics,
            fact_check_enabled=settings.fact_check_enabled and self.search is not None,
        ).gather(context)
        run.stages.append(intelligence_result)
        intelligence = intelligence_result.data

        # == 3. Strategy ==
        strategy_result: StageResult[Strategy] = await StrategyAgent(metrics=self.metrics).plan(
            psychology, intelligence, lead
        )
        run.stages.append(strategy_result)
        strategy = strategy_result.data

        # == 4. Content ==
        content_result: StageResult[DraftContent] = await ContentAgent(
            metrics=self.metrics,
            floor_plan_delivery_enabled=settings.floor_plan_delivery_enabled,
        ).compose(context.text, psychology, intelligence, strategy, lead)
        run.stages.append(content_result)
        draft = content_result.data

        # == 5. Synthesis ==
        synthesis_result: StageResult[FinalResponse] = await SynthesisAgent(
            metrics=self.metrics
        ).finalize(psychology, intelligence, strategy, draft, lead)
        run.stages.append(synthesis_result)
        final = synthesis_result.data

        if run.exhausted(intelligence):
            logger.error(
                "[%s] Every stage degraded with no catalog or market data, using global fallback",
                run.operation_id,
            )
            return None

        # == Assemble ==
        result = PipelineResult(
            success=True,
            response=final.message,
            appointment_intent=final.appointment_intent,
            floor_plan_images=final.floor_plan_images,
            lead_updates=final.lead_updates,
            consultant_briefing=final.consultant_briefing,
            processing_time_ms=run.elapsed_ms,
            quality_score=final.quality_score,
            layer_results={s.stage: s.data.to_wire() for s in run.stages},
            lead_interests=extract_lead_interests(intelligence),
            operation_id=run.operation_id,
            fallback=run.any_fallback,
        )

        await self._record(
            ProcessingOutcome(
                success=True,
                processing_time_ms=result.processing_time_ms,
                appointment_booked=final.appointment_intent,
                fact_checked=final.fact_checked,
                fact_check_accuracy=intelligence.data_confidence,
                floor_plans_delivered=len(final.floor_plan_images),
                lead_qualified=final.quality_score > QUALIFIED_QUALITY,
                fallback_used=run.any_fallback,
            ),
            run.operation_id,
        )
        return result

    async def _record(self, outcome: ProcessingOutcome, operation_id: str) -> None:
        if self.metrics is None:
            return
        try:
            await self.metrics.record_processing_result(outcome)
        except Exception as exc:
            logger.warning("[%s] Failed to record processing result: %s", operation_id, exc)

"""Intelligence Agent (stage 2): catalog, fact checks, market data, floor plans.

Four sequential sub-steps, each tolerant of its own upstream failure:

1. Catalog lookup (filters derived from the message and lead budget)
2. Fact verification of the top properties (FactVerifier)
3. Market intelligence search, only for market/area/type questions
4. Floor-plan retrieval, only when the lead asks for plans or layouts
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from doro_platform.agents.base import AgentResult

from .contracts import (
    CatalogFilters,
    ConversationContext,
    FloorPlan,
    IntelligencePackage,
    MarketIntelligence,
    PropertyFloorPlans,
    PropertyRecord,
    SearchSnippet,
)
from .fact_verifier import FactCheckOutcome, FactVerifier, UNCHECKED_CONFIDENCE
from .fallbacks import fallback_intelligence
from .message_signals import build_market_query, extract_catalog_filters, wants_floor_plans
from .stage import PipelineStage

logger = logging.getLogger(__name__)

MAX_FLOOR_PLAN_PROPERTIES = 2
MAX_IMAGES_PER_PROPERTY = 3
MAX_INSIGHTS = 3


class IntelligenceAgent(PipelineStage[IntelligencePackage]):
    stage_name = "intelligence"

    def __init__(
        self,
        catalog,
        search,
        verifier: Optional[FactVerifier] = None,
        metrics=None,
        fact_check_enabled: bool = True,
    ):
        super().__init__(metrics=metrics)
        self.catalog = catalog
        self.search = search
        self.verifier = verifier or FactVerifier(search)
        self.fact_check_enabled = fact_check_enabled

    async def produce(self, context: ConversationContext) -> AgentResult:
        lead = context.lead_profile

        # == 1. Catalog lookup ==
        filters = extract_catalog_filters(context.text, lead.budget)
        properties = await self._lookup_properties(filters)

        # == 2. Fact verification ==
        checked = await self._verify(properties)

        # == 3. Market intelligence ==
        market = await self._market_intelligence(context.text, lead.intent)

        # == 4. Floor plans ==
        floor_plans = self._floor_plans(context.text, checked.properties)

        package = IntelligencePackage(
            properties=checked.properties,
            search_criteria=filters,
            fact_check_results=checked.results,
            data_confidence=checked.confidence,
            market_intelligence=market,
            floor_plans=floor_plans,
        )

        logger.debug(
            "[%s] properties=%d fact_checked=%s confidence=%.2f market=%s floor_plans=%s",
            self.agent_name,
            len(package.properties),
            package.fact_check_results is not None,
            package.data_confidence,
            market is not None,
            floor_plans is not None,
        )
        return AgentResult.success(package)

    def fallback(self, context: ConversationContext) -> IntelligencePackage:
        return fallback_intelligence()

    async def gather(self, context: ConversationContext):
        """Run the stage; always returns a ``StageResult[IntelligencePackage]``."""
        return await self.run(context=context)

    # ------------------------------------------------------------------
    # Sub-steps
    # ------------------------------------------------------------------

    async def _lookup_properties(self, filters: CatalogFilters) -> list[PropertyRecord]:
        try:
            return await self.catalog.find_properties(filters)
        except Exception as exc:
            logger.warning("[%s] Catalog lookup failed: %s", self.agent_name, exc)
            return []

    async def _verify(self, properties: list[PropertyRecord]) -> FactCheckOutcome:
        if not self.fact_check_enabled:
            return FactCheckOutcome(properties=properties, results=None, confidence=UNCHECKED_CONFIDENCE)
        try:
            return await self.verifier.verify_properties(properties)
        except Exception as exc:
            logger.warning("[%s] Fact verification failed: %s", self.agent_name, exc)
            return FactCheckOutcome(properties=properties, results=None, confidence=UNCHECKED_CONFIDENCE)

    async def _market_intelligence(self, text: str, intent: Optional[str]) -> Optional[MarketIntelligence]:
        query = build_market_query(text, intent)
        if not query or self.search is None:
            return None
        try:
            hits = await self.search.search(query, num_results=MAX_INSIGHTS)
        except Exception as exc:
            logger.warning("[%s] Market search failed: %s", self.agent_name, exc)
            return None
        if not hits:
            return None
        return MarketIntelligence(
            query=query,
            insights=[SearchSnippet.model_validate(h, from_attributes=True) for h in hits[:MAX_INSIGHTS]],
            timestamp=datetime.now(timezone.utc).isoformat(),
            source="web_search",
        )

    def _floor_plans(self, text: str, properties: list[PropertyRecord]) -> Optional[list[PropertyFloorPlans]]:
        if not wants_floor_plans(text):
            return None

        bundles = []
        for prop in properties[:MAX_FLOOR_PLAN_PROPERTIES]:
            plans = [
                FloorPlan(
                    id=asset.id,
                    url=asset.public_url,
                    analysis=asset.ai_visual_analysis[0] if asset.ai_visual_analysis else None,
                )
                for asset in prop.visual_assets
                if asset.asset_type == "floor_plan"
            ]
            if plans:
                bundles.append(PropertyFloorPlans(
                    property_name=prop.project_name,
                    floor_plans=plans[:MAX_IMAGES_PER_PROPERTY],
                ))
        return bundles or None

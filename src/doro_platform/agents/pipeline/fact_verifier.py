"""Fact Verifier: cross-checks catalog claims against web search snippets.

For each of the top properties a search query is built from the project
name and developer; the snippets are then compared against the catalog
record by a low-temperature model call. Confidence per property:

- no search results -> 0.3
- search or model failure -> 0.3
- otherwise the model's confidence (0-1)

The aggregate is the arithmetic mean over the checked properties and is
only computed after every check has finished.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from doro_platform.agents.base import BaseAgent

from .contracts import FactCheckResult, PropertyRecord, SearchSnippet
from .message_signals import month_year

logger = logging.getLogger(__name__)

NO_EVIDENCE_CONFIDENCE = 0.3
UNCHECKED_CONFIDENCE = 0.5
VERIFIED_THRESHOLD = 0.7
MAX_CHECKS = 3

SYSTEM_INSTRUCTION = (
    "You are a fact-checking expert for Singapore real estate data. Analyze web search "
    "results to verify property information accuracy."
)

VERIFICATION_PROMPT_TEMPLATE = """Analyze these web search results to verify property information.

PROPERTY TO VERIFY:
- Name: {name}
- Developer: {developer}
- Price Range: {price_range}
- Launch Date: {launch_date}
- TOP Date: {top_date}
- District: {district}

WEB SEARCH RESULTS:
{results_ctx}

Return JSON:
{{
  "confidence": 0.0,
  "verifiedData": {{
    "priceAccurate": true,
    "developerAccurate": true,
    "launchDateAccurate": true,
    "topDateAccurate": true,
    "correctedInfo": {{
      "priceRangeMin": null,
      "priceRangeMax": null,
      "actualDeveloper": null,
      "actualLaunchDate": null,
      "actualTopDate": null
    }}
  }},
  "summary": "brief summary of findings",
  "discrepancies": ["discrepancy"],
  "additionalInfo": "anything else relevant"
}}
confidence is a number between 0 and 1 for how well the search results support the catalog record."""


@dataclass
class FactCheckOutcome:
    """Verified property list plus the per-property check results."""
    properties: list[PropertyRecord]
    results: Optional[list[FactCheckResult]]
    confidence: float


def build_verification_query(prop: PropertyRecord, today: Optional[date] = None) -> str:
    return (
        f'"{prop.project_name}" Singapore property price launch date developer '
        f'"{prop.developer or ""}" {month_year(today)}'
    )


class FactVerifier(BaseAgent):
    def __init__(
        self,
        search,
        mode: Literal["sequential", "concurrent"] = "concurrent",
        max_checks: int = MAX_CHECKS,
    ):
        super().__init__(agent_name="fact_verifier", temperature=0.1, max_output_tokens=600)
        self.search = search
        self.mode = mode
        self.max_checks = min(max_checks, MAX_CHECKS)

    async def verify_properties(self, properties: list[PropertyRecord]) -> FactCheckOutcome:
        """Check the top properties and mark each verified or unverified."""
        if not properties:
            return FactCheckOutcome(properties=[], results=None, confidence=UNCHECKED_CONFIDENCE)

        targets = properties[: self.max_checks]
        if self.mode == "sequential":
            results = [await self.verify_property(p) for p in targets]
        else:
            semaphore = asyncio.Semaphore(self.max_checks)

            async def _bounded(prop: PropertyRecord) -> FactCheckResult:
                async with semaphore:
                    return await self.verify_property(prop)

            results = list(await asyncio.gather(*(_bounded(p) for p in targets)))

        confidence = sum(r.confidence for r in results) / len(results)

        verified = []
        for index, prop in enumerate(properties):
            check = results[index] if index < len(results) else None
            if check is not None and check.confidence > VERIFIED_THRESHOLD:
                verified.append(
                    prop.model_copy(
                        update={
                            "verified": True,
                            "confidence": check.confidence,
                            "fact_check_data": check.verified_data,
                        }
                    )
                )
            else:
                verified.append(
                    prop.model_copy(update={"verified": False, "confidence": UNCHECKED_CONFIDENCE})
                )

        logger.info(
            "[%s] Checked %d properties (%s): mean confidence %.2f",
            self.agent_name,
            len(results),
            self.mode,
            confidence,
        )
        return FactCheckOutcome(properties=verified, results=results, confidence=confidence)

    async def verify_property(self, prop: PropertyRecord) -> FactCheckResult:
        """Verify one property; never raises."""
        query = build_verification_query(prop)
        base = {"property_id": prop.id, "project_name": prop.project_name, "search_query": query}

        try:
            hits = await self.search.search(query, num_results=3)
        except Exception as exc:
            logger.warning("[%s] Search failed for %s: %s", self.agent_name, prop.project_name, exc)
            return FactCheckResult(confidence=NO_EVIDENCE_CONFIDENCE, summary="Search failed", **base)

        if not hits:
            return FactCheckResult(confidence=NO_EVIDENCE_CONFIDENCE, summary="No search results", **base)

        snippets = [SearchSnippet.model_validate(h, from_attributes=True) for h in hits]
        result = await self.generate_json(
            prompt=self._build_prompt(prop, snippets),
            system_instruction=SYSTEM_INSTRUCTION,
        )
        if not result.ok:
            return FactCheckResult(
                confidence=NO_EVIDENCE_CONFIDENCE,
                summary="Verification analysis failed",
                search_results=snippets[:2],
                **base,
            )

        check = FactCheckResult.from_llm(result.data)
        if not isinstance(result.data, dict) or "confidence" not in result.data:
            check = check.model_copy(update={"confidence": NO_EVIDENCE_CONFIDENCE})
        return check.model_copy(update={**base, "search_results": snippets[:2]})

    def _build_prompt(self, prop: PropertyRecord, snippets: list[SearchSnippet]) -> str:
        results_ctx = "\n".join(
            f"{i + 1}. {s.title}\n   {s.snippet}\n   Source: {s.url}" for i, s in enumerate(snippets)
        )
        return VERIFICATION_PROMPT_TEMPLATE.format(
            name=prop.project_name,
            developer=prop.developer or "Unknown",
            price_range=prop.price_range_label,
            launch_date=prop.launch_date or "Unknown",
            top_date=prop.top_date or "Unknown",
            district=prop.district or "Unknown",
            results_ctx=results_ctx,
        )

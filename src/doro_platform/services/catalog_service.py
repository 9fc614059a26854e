"""Property catalog lookups for the intelligence stage."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from doro_platform.agents.pipeline.contracts import CatalogFilters, PropertyRecord
from doro_platform.domain.models import PropertyProject, PropertyUnitMix, VisualAsset

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 5


class PropertyCatalogService:
    """Filtered lookup of available projects with unit mix and visual assets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_properties(
        self, filters: CatalogFilters, limit: int = MAX_CANDIDATES
    ) -> list[PropertyRecord]:
        """Return up to *limit* available projects matching *filters*.

        Price range matches projects whose whole range sits inside the
        requested band. Bedrooms match projects with at least one unit type
        of that size.
        """
        stmt = (
            select(PropertyProject)
            .options(
                selectinload(PropertyProject.unit_mix),
                selectinload(PropertyProject.visual_assets).selectinload(
                    VisualAsset.ai_visual_analysis
                ),
            )
            .where(PropertyProject.sales_status == "Available")
        )

        if filters.district:
            stmt = stmt.where(PropertyProject.district == filters.district)
        if filters.property_type:
            stmt = stmt.where(PropertyProject.property_type == filters.property_type)
        if filters.price_range:
            stmt = stmt.where(
                PropertyProject.price_range_min >= filters.price_range.min,
                PropertyProject.price_range_max <= filters.price_range.max,
            )
        if filters.bedrooms:
            stmt = stmt.where(
                PropertyProject.unit_mix.any(PropertyUnitMix.bedrooms == filters.bedrooms)
            )

        stmt = stmt.order_by(PropertyProject.project_name).limit(min(limit, MAX_CANDIDATES))

        result = await self.db.execute(stmt)
        projects = result.scalars().all()

        logger.debug(
            "Catalog lookup %s returned %d projects",
            filters.model_dump(exclude_none=True),
            len(projects),
        )
        return [PropertyRecord.model_validate(p, from_attributes=True) for p in projects]

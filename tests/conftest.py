"""Shared test infrastructure for the Doro Platform test suite.

Provides:
- db_session: async SQLite in-memory session with all catalog tables created
- make_project: factory for PropertyProject + unit mix + visual assets + analyses
- make_context: factory for ConversationContext
- search_mock: mock WebSearchService returning canned results
- monitor: fresh PipelineMonitor
- test_settings: Settings isolated from the local .env
"""

import uuid
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from doro_platform.infra.database import Base

import doro_platform.domain.models  # noqa: F401

from doro_platform.agents.pipeline.contracts import ConversationContext, HistoryMessage, LeadProfile
from doro_platform.app.config import Settings
from doro_platform.domain.models import (
    PropertyProject,
    PropertyUnitMix,
    VisualAnalysis,
    VisualAsset,
)
from doro_platform.services.pipeline_monitor import PipelineMonitor
from doro_platform.services.web_search_service import SearchResult


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Catalog factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_project(db_session):
    """Factory that creates a PropertyProject with unit mix and floor plans.

    Usage:
        project = await make_project(project_name="Lentor Mansion", bedrooms=[2, 3])
    """
    async def _factory(
        project_name: str = "Lentor Mansion",
        developer: str = "GuocoLand",
        district: str = "26",
        property_type: str = "Private Condo",
        price_range_min: float = 1_200_000,
        price_range_max: float = 2_400_000,
        sales_status: str = "Available",
        bedrooms: tuple = (2, 3),
        floor_plans: int = 0,
    ) -> PropertyProject:
        project = PropertyProject(
            id=str(uuid.uuid4()),
            project_name=project_name,
            developer=developer,
            district=district,
            property_type=property_type,
            tenure="99-year leasehold",
            price_range_min=price_range_min,
            price_range_max=price_range_max,
            sales_status=sales_status,
            launch_date=date(2024, 3, 1),
            top_date=date(2027, 6, 30),
            unit_mix=[
                PropertyUnitMix(
                    id=str(uuid.uuid4()),
                    unit_type=f"{n} Bedroom",
                    bedrooms=n,
                    size_min_sqft=600 + n * 150,
                    size_max_sqft=700 + n * 200,
                    units_available=10,
                )
                for n in bedrooms
            ],
            visual_assets=[
                VisualAsset(
                    id=str(uuid.uuid4()),
                    asset_type="floor_plan",
                    file_name=f"plan-{i}.png",
                    public_url=f"https://cdn.test/{project_name.lower().replace(' ', '-')}/plan-{i}.png",
                    ai_visual_analysis=[
                        VisualAnalysis(
                            id=str(uuid.uuid4()),
                            analysis_type="floor_plan_analysis",
                            confidence_score=0.9,
                            room_count=3,
                            layout_type="dumbbell",
                            square_footage=969,
                            key_features=["balcony"],
                            summary="Efficient dumbbell layout",
                        )
                    ],
                )
                for i in range(floor_plans)
            ],
        )
        db_session.add(project)
        await db_session.flush()
        return project

    return _factory


# ---------------------------------------------------------------------------
# Conversation context factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_context():
    """Factory that builds a ConversationContext.

    Usage:
        ctx = make_context("Any 3 bedroom condo in D15?", history=[("bot", "Hi!")])
    """
    def _factory(
        text: str = "Hi, looking for a condo",
        history: list[tuple[str, str]] | None = None,
        budget: str | None = None,
        intent: str | None = None,
        **profile,
    ) -> ConversationContext:
        return ConversationContext(
            lead_id="lead-1",
            sender_id="+6591234567",
            text=text,
            sender_name="Wei Ling",
            history=[HistoryMessage(sender=s, message=m) for s, m in (history or [])],
            lead_profile=LeadProfile(budget=budget, intent=intent, **profile),
        )

    return _factory


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------

@pytest.fixture
def search_results():
    return [
        SearchResult(
            title="Lentor Mansion price list and launch details",
            snippet="Lentor Mansion by GuocoLand launched in March 2024 from $1.2M.",
            url="https://www.edgeprop.sg/lentor-mansion",
            display_link="www.edgeprop.sg",
            relevance_score=0.9,
        ),
        SearchResult(
            title="Singapore condo prices",
            snippet="Private home prices rose 1.2% last quarter.",
            url="https://example.com/condo-prices",
            display_link="example.com",
            relevance_score=0.6,
        ),
    ]


@pytest.fixture
def search_mock(search_results):
    """Mock WebSearchService whose search() returns the canned results."""
    mock = MagicMock()
    mock.search = AsyncMock(return_value=search_results)
    return mock


@pytest.fixture
def monitor():
    return PipelineMonitor()


@pytest.fixture
def test_settings():
    """Settings that ignore any local .env file."""
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        pipeline_timeout_seconds=5.0,
        fact_check_mode="concurrent",
    )

"""Reply pipeline routes.

POST /api/pipeline/messages  - run one inbound message through the pipeline
GET  /api/pipeline/health    - pipeline monitor health report
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from doro_platform.agents.pipeline.contracts import ConversationContext
from doro_platform.infra.database import get_db
from doro_platform.services.pipeline_monitor import PipelineMonitor
from doro_platform.services.web_search_service import WebSearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


def get_monitor(request: Request) -> PipelineMonitor:
    return request.app.state.monitor


def get_search(request: Request) -> WebSearchService:
    return request.app.state.search


@router.post("/messages")
async def process_message(
    context: ConversationContext,
    db: AsyncSession = Depends(get_db),
    monitor: PipelineMonitor = Depends(get_monitor),
    search: WebSearchService = Depends(get_search),
):
    """Generate the reply for one inbound lead message.

    Always answers 200 with a ``PipelineResult``; degraded runs are marked
    by ``success``/``fallback`` rather than an HTTP error.
    """
    from doro_platform.services.catalog_service import PropertyCatalogService
    from doro_platform.services.pipeline_orchestrator import PipelineOrchestrator

    orchestrator = PipelineOrchestrator(
        catalog=PropertyCatalogService(db),
        search=search,
        metrics=monitor,
    )
    result = await orchestrator.process_message(context)
    return result.to_wire()


@router.get("/health")
async def pipeline_health(monitor: PipelineMonitor = Depends(get_monitor)):
    """Monitor health report plus whether fallbacks are currently recommended."""
    report = await monitor.get_health_status()
    report["fallbackRecommended"] = await monitor.should_use_fallback()
    return report

"""Pipeline API route tests with the orchestrator mocked."""

from unittest.mock import AsyncMock, MagicMock, patch

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from doro_platform.agents.pipeline.contracts import PipelineResult
from doro_platform.services.pipeline_monitor import PipelineMonitor, ProcessingOutcome
from doro_platform.services.web_search_service import WebSearchService

_ORCHESTRATOR = "doro_platform.services.pipeline_orchestrator.PipelineOrchestrator"
_PROCESS = f"{_ORCHESTRATOR}.process_message"


def _build_app_client(db_session: AsyncSession, monitor: PipelineMonitor, search=None):
    """Build an HTTPX AsyncClient wired to a test FastAPI app.

    Uses a fresh FastAPI app with only the pipeline router so the catalog
    database lifespan never runs.
    """
    from fastapi import FastAPI
    from doro_platform.app.routes.pipeline import router as pipeline_router
    from doro_platform.infra.database import get_db

    test_app = FastAPI()
    test_app.include_router(pipeline_router)
    test_app.state.monitor = monitor
    test_app.state.search = search or MagicMock(spec=WebSearchService)

    async def _override_get_db():
        yield db_session

    test_app.dependency_overrides[get_db] = _override_get_db

    return AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://testserver",
    )


MESSAGE_PAYLOAD = {
    "leadId": "lead-42",
    "senderId": "+6598765432",
    "text": "Any 3 bedroom condo in D15 below $2M?",
    "history": [
        {"sender": "bot", "message": "Hi! I'm Doro, how can I help?"},
        {"sender": "lead", "message": "Looking to buy"},
    ],
    "leadProfile": {"budget": "$2M", "intent": "own_stay"},
}


class TestProcessMessage:
    async def test_returns_camel_case_result(self, db_session, monitor):
        result = PipelineResult(
            success=True,
            response="Got a few D15 options for you!",
            appointment_intent=False,
            processing_time_ms=1200,
            quality_score=0.85,
            operation_id="op-1",
        )

        with patch(_PROCESS, new_callable=AsyncMock, return_value=result) as mock_process:
            async with _build_app_client(db_session, monitor) as client:
                resp = await client.post("/api/pipeline/messages", json=MESSAGE_PAYLOAD)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["response"] == "Got a few D15 options for you!"
        assert data["appointmentIntent"] is False
        assert data["processingTimeMs"] == 1200
        assert data["qualityScore"] == 0.85
        assert data["floorPlanImages"] == []
        assert data["consultantBriefing"] is None

        context = mock_process.await_args.args[0]
        assert context.lead_id == "lead-42"
        assert context.lead_profile.budget == "$2M"
        assert [m.sender for m in context.history] == ["bot", "lead"]

    async def test_global_fallback_is_still_200(self, db_session, monitor):
        from doro_platform.agents.pipeline.fallbacks import global_fallback

        with patch(_PROCESS, new_callable=AsyncMock, return_value=global_fallback(30000, "op-2")):
            async with _build_app_client(db_session, monitor) as client:
                resp = await client.post("/api/pipeline/messages", json=MESSAGE_PAYLOAD)

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert data["fallback"] is True
        assert data["qualityScore"] == 0.3

    async def test_missing_text_is_rejected(self, db_session, monitor):
        payload = {k: v for k, v in MESSAGE_PAYLOAD.items() if k != "text"}

        with patch(_PROCESS, new_callable=AsyncMock) as mock_process:
            async with _build_app_client(db_session, monitor) as client:
                resp = await client.post("/api/pipeline/messages", json=payload)

        assert resp.status_code == 422
        mock_process.assert_not_called()

    async def test_search_service_shared_across_requests(self, db_session, monitor):
        search = MagicMock(spec=WebSearchService)
        result = PipelineResult(success=True, response="Hi!", operation_id="op-3")

        with patch(_ORCHESTRATOR) as MockOrchestrator:
            MockOrchestrator.return_value.process_message = AsyncMock(return_value=result)
            async with _build_app_client(db_session, monitor, search=search) as client:
                await client.post("/api/pipeline/messages", json=MESSAGE_PAYLOAD)
                await client.post("/api/pipeline/messages", json=MESSAGE_PAYLOAD)

        assert MockOrchestrator.call_count == 2
        assert all(call.kwargs["search"] is search for call in MockOrchestrator.call_args_list)
        assert all(call.kwargs["metrics"] is monitor for call in MockOrchestrator.call_args_list)


class TestPipelineHealth:
    async def test_fresh_monitor(self, db_session, monitor):
        async with _build_app_client(db_session, monitor) as client:
            resp = await client.get("/api/pipeline/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["overall"]["status"] == "healthy"
        assert data["fallbackRecommended"] is False
        assert "psychology" in data["layers"]

    async def test_unhealthy_monitor_recommends_fallback(self, db_session, monitor):
        for _ in range(3):
            await monitor.record_processing_result(
                ProcessingOutcome(success=False, processing_time_ms=30000, fallback_used=True)
            )

        async with _build_app_client(db_session, monitor) as client:
            resp = await client.get("/api/pipeline/health")

        data = resp.json()
        assert data["fallbackRecommended"] is True
        assert data["overall"]["totalProcessed"] == 3


class TestServiceHealth:
    async def test_health(self):
        from doro_platform.app.main import app

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
            resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "service": "doro-platform"}
        assert isinstance(app.state.monitor, PipelineMonitor)
        assert isinstance(app.state.search, WebSearchService)

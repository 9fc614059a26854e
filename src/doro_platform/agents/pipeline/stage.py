"""Shared run/fallback/metrics wrapper for the five pipeline stages."""

import logging
import time
from typing import Any, Generic, Optional, TypeVar

from doro_platform.agents.base import AgentResult, BaseAgent

from .contracts import StageResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineStage(BaseAgent, Generic[T]):
    """A pipeline stage that always yields schema-valid output.

    Subclasses implement ``produce`` (returning an ``AgentResult`` whose
    ``data`` is the stage contract) and ``fallback``. ``run`` turns a
    failed result, or an unexpected exception inside ``produce``, into a
    degraded ``StageResult`` carrying the fallback, and reports the
    attempt to the metrics sink.
    """

    stage_name: str = ""

    def __init__(self, metrics: Optional[Any] = None, **agent_kwargs):
        super().__init__(agent_name=self.stage_name, **agent_kwargs)
        self.metrics = metrics

    async def produce(self, **inputs) -> AgentResult:
        raise NotImplementedError

    def fallback(self, **inputs) -> T:
        raise NotImplementedError

    async def run(self, **inputs) -> StageResult[T]:
        start_time = time.time()
        try:
            outcome = await self.produce(**inputs)
        except Exception as exc:
            logger.exception("[%s] Unexpected stage error", self.stage_name)
            outcome = AgentResult.failure(repr(exc))

        duration_ms = int((time.time() - start_time) * 1000)

        if outcome.ok:
            await self._record(duration_ms, True)
            logger.debug("[%s] Stage completed in %dms", self.stage_name, duration_ms)
            return StageResult.success(self.stage_name, outcome.data, duration_ms=duration_ms)

        logger.error(
            "[%s] Stage failed after %dms, using fallback: %s",
            self.stage_name,
            duration_ms,
            outcome.error,
        )
        await self._record(duration_ms, False, outcome.error)
        return StageResult.degraded(
            self.stage_name,
            self.fallback(**inputs),
            error=outcome.error or "unknown error",
            duration_ms=duration_ms,
        )

    async def _record(self, duration_ms: int, success: bool, error: Optional[str] = None) -> None:
        if self.metrics is None:
            return
        await self.metrics.record_layer_attempt(self.stage_name, duration_ms, success, error)

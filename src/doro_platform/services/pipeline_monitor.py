"""Pipeline monitor: per-stage and per-run metrics with health alerts.

One ``PipelineMonitor`` is created by the application and injected into
each ``PipelineOrchestrator``. Concurrent runs from different conversations
share it, so every mutation happens under an ``asyncio.Lock``.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

STAGES = ("psychology", "intelligence", "strategy", "content", "synthesis")

MAX_RECENT_FAILURES = 10
MAX_ALERT_HISTORY = 100

LAYER_DEGRADED_RATE = 0.6
CRITICAL_LAYER_RATE = 0.5
MIN_CONVERSION_RATE = 0.1

ALERT_SEVERITY = {
    "CRITICAL_LAYER_FAILURE": "critical",
    "LOW_SUCCESS_RATE": "high",
    "HIGH_PROCESSING_TIME": "medium",
    "LAYER_DEGRADATION": "medium",
    "HIGH_FALLBACK_RATE": "medium",
    "LOW_FACT_CHECK_ACCURACY": "medium",
    "LAYER_SLOW_PERFORMANCE": "low",
    "LOW_CONVERSION_RATE": "low",
}


class MetricsSink(Protocol):
    """What the orchestrator and stages report to."""

    async def record_layer_attempt(
        self, stage: str, duration_ms: int, success: bool, error: Optional[str] = None
    ) -> None: ...

    async def record_processing_result(self, outcome: "ProcessingOutcome") -> None: ...


@dataclass
class ProcessingOutcome:
    """End-of-run summary reported by the orchestrator."""
    success: bool
    processing_time_ms: int
    appointment_booked: bool = False
    fact_checked: bool = False
    fact_check_accuracy: float = 0.0
    floor_plans_delivered: int = 0
    lead_qualified: bool = False
    fallback_used: bool = False


@dataclass
class Thresholds:
    max_processing_time_ms: int = 30_000
    min_success_rate: float = 0.8
    max_fallback_rate: float = 0.2
    min_fact_check_accuracy: float = 0.7
    max_layer_time_ms: int = 10_000


@dataclass
class StageFailure:
    timestamp: str
    error: str
    duration_ms: int


@dataclass
class StageMetrics:
    attempts: int = 0
    successes: int = 0
    avg_time_ms: float = 0.0
    failures: list[StageFailure] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        return self.successes / self.attempts if self.attempts else 1.0


@dataclass
class Alert:
    id: str
    type: str
    message: str
    severity: str
    created_at: str
    stage: Optional[str] = None
    resolved_at: Optional[str] = None


def _running_average(current: float, new_value: float, count: int) -> float:
    if count <= 1:
        return float(new_value)
    return (current * (count - 1) + new_value) / count


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PipelineMonitor:
    """In-process ``MetricsSink`` with health reporting."""

    def __init__(self, thresholds: Thresholds | None = None):
        self.thresholds = thresholds or Thresholds()
        self._lock = asyncio.Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self.stages: dict[str, StageMetrics] = {name: StageMetrics() for name in STAGES}
        self.total_processed = 0
        self.total_successful = 0
        self.total_fallbacks = 0
        self.average_processing_time_ms = 0.0
        self.appointment_conversions = 0
        self.fact_checked_runs = 0
        self.fact_check_accuracy = 0.0
        self.floor_plan_deliveries = 0
        self.lead_qualifications = 0
        self.active_alerts: list[Alert] = []
        self.alert_history: deque[Alert] = deque(maxlen=MAX_ALERT_HISTORY)

    async def reset(self) -> None:
        async with self._lock:
            self._reset_state()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_layer_attempt(
        self, stage: str, duration_ms: int, success: bool, error: Optional[str] = None
    ) -> None:
        async with self._lock:
            metrics = self.stages.get(stage)
            if metrics is None:
                logger.warning("Ignoring metrics for unknown stage %s", stage)
                return

            metrics.attempts += 1
            if success:
                metrics.successes += 1
                metrics.avg_time_ms = _running_average(
                    metrics.avg_time_ms, duration_ms, metrics.successes
                )
            else:
                metrics.failures.append(
                    StageFailure(timestamp=_now(), error=error or "Unknown error", duration_ms=duration_ms)
                )
                metrics.failures = metrics.failures[-MAX_RECENT_FAILURES:]

            self._resolve_alerts()
            self._check_stage_health(stage, metrics)

    async def record_processing_result(self, outcome: ProcessingOutcome) -> None:
        async with self._lock:
            self.total_processed += 1
            if outcome.success:
                self.total_successful += 1
                self.average_processing_time_ms = _running_average(
                    self.average_processing_time_ms,
                    outcome.processing_time_ms,
                    self.total_successful,
                )
            if outcome.fallback_used:
                self.total_fallbacks += 1
            if outcome.appointment_booked:
                self.appointment_conversions += 1
            if outcome.fact_checked:
                self.fact_checked_runs += 1
                self.fact_check_accuracy = _running_average(
                    self.fact_check_accuracy, outcome.fact_check_accuracy, self.fact_checked_runs
                )
            self.floor_plan_deliveries += outcome.floor_plans_delivered
            if outcome.lead_qualified:
                self.lead_qualifications += 1

            self._perform_health_check()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _rates(self) -> tuple[float, float, float]:
        if not self.total_processed:
            return 1.0, 0.0, 0.0
        return (
            self.total_successful / self.total_processed,
            self.total_fallbacks / self.total_processed,
            self.appointment_conversions / self.total_processed,
        )

    async def get_health_status(self) -> dict:
        async with self._lock:
            return self._health_snapshot()

    def _health_snapshot(self) -> dict:
        success_rate, fallback_rate, conversion_rate = self._rates()
        return {
            "overall": {
                "status": self._overall_status(),
                "successRate": success_rate,
                "fallbackRate": fallback_rate,
                "conversionRate": conversion_rate,
                "averageProcessingTime": self.average_processing_time_ms,
                "totalProcessed": self.total_processed,
            },
            "layers": {
                name: {
                    "attempts": m.attempts,
                    "successRate": m.success_rate,
                    "averageTime": m.avg_time_ms,
                    "recentFailures": len(m.failures),
                    "status": self._stage_status(m),
                }
                for name, m in self.stages.items()
            },
            "businessMetrics": {
                "appointmentConversions": self.appointment_conversions,
                "factCheckAccuracy": self.fact_check_accuracy,
                "floorPlanDeliveries": self.floor_plan_deliveries,
                "leadQualifications": self.lead_qualifications,
            },
            "alerts": [
                {
                    "id": a.id,
                    "type": a.type,
                    "message": a.message,
                    "severity": a.severity,
                    "stage": a.stage,
                    "createdAt": a.created_at,
                }
                for a in self.active_alerts
            ],
            "lastUpdated": _now(),
        }

    async def should_use_fallback(self) -> bool:
        """True when the pipeline is unhealthy enough to skip straight to fallbacks."""
        async with self._lock:
            success_rate, _, _ = self._rates()
            if success_rate < self.thresholds.min_success_rate:
                self._create_alert(
                    "LOW_SUCCESS_RATE", f"System success rate ({success_rate:.1%}) below threshold"
                )
                return True
            if self.average_processing_time_ms > self.thresholds.max_processing_time_ms:
                self._create_alert(
                    "HIGH_PROCESSING_TIME",
                    f"Average processing time ({self.average_processing_time_ms:.0f}ms) exceeds threshold",
                )
                return True
            for name in ("psychology", "intelligence"):
                metrics = self.stages[name]
                if metrics.attempts >= 5 and metrics.success_rate < CRITICAL_LAYER_RATE:
                    self._create_alert(
                        "CRITICAL_LAYER_FAILURE",
                        f"Critical layer {name} success rate: {metrics.success_rate:.1%}",
                        stage=name,
                    )
                    return True
            return False

    # ------------------------------------------------------------------
    # Alerting
    # ------------------------------------------------------------------

    def _check_stage_health(self, stage: str, metrics: StageMetrics) -> None:
        if metrics.attempts >= 5 and metrics.success_rate < LAYER_DEGRADED_RATE:
            self._create_alert(
                "LAYER_DEGRADATION",
                f"Layer {stage} success rate: {metrics.success_rate:.1%}",
                stage=stage,
            )
        if metrics.avg_time_ms > self.thresholds.max_layer_time_ms:
            self._create_alert(
                "LAYER_SLOW_PERFORMANCE",
                f"Layer {stage} average time: {metrics.avg_time_ms:.0f}ms",
                stage=stage,
            )

    def _perform_health_check(self) -> None:
        _, fallback_rate, conversion_rate = self._rates()
        self._resolve_alerts()

        if fallback_rate > self.thresholds.max_fallback_rate:
            self._create_alert("HIGH_FALLBACK_RATE", f"Fallback rate: {fallback_rate:.1%}")
        if (
            self.fact_checked_runs
            and self.fact_check_accuracy < self.thresholds.min_fact_check_accuracy
        ):
            self._create_alert(
                "LOW_FACT_CHECK_ACCURACY", f"Fact-check accuracy: {self.fact_check_accuracy:.1%}"
            )
        if self.total_processed >= 20 and conversion_rate < MIN_CONVERSION_RATE:
            self._create_alert(
                "LOW_CONVERSION_RATE", f"Appointment conversion rate: {conversion_rate:.1%}"
            )

    def _resolve_alerts(self) -> None:
        """Move alerts whose metric has recovered into the history."""
        success_rate, fallback_rate, conversion_rate = self._rates()

        still_active = []
        for alert in self.active_alerts:
            if self._is_resolved(alert, success_rate, fallback_rate, conversion_rate):
                alert.resolved_at = _now()
                self.alert_history.append(alert)
                logger.info("[monitor] Resolved alert %s (%s)", alert.type, alert.stage or "pipeline")
            else:
                still_active.append(alert)
        self.active_alerts = still_active

    def _is_resolved(
        self, alert: Alert, success_rate: float, fallback_rate: float, conversion_rate: float
    ) -> bool:
        thresholds = self.thresholds
        stage = self.stages.get(alert.stage) if alert.stage else None

        if alert.type == "LOW_SUCCESS_RATE":
            return success_rate >= thresholds.min_success_rate
        if alert.type == "HIGH_PROCESSING_TIME":
            return self.average_processing_time_ms <= thresholds.max_processing_time_ms
        if alert.type == "HIGH_FALLBACK_RATE":
            return fallback_rate <= thresholds.max_fallback_rate
        if alert.type == "LOW_FACT_CHECK_ACCURACY":
            return self.fact_check_accuracy >= thresholds.min_fact_check_accuracy
        if alert.type == "LOW_CONVERSION_RATE":
            return conversion_rate >= MIN_CONVERSION_RATE
        if stage is None:
            return False
        if alert.type == "LAYER_DEGRADATION":
            return stage.success_rate >= LAYER_DEGRADED_RATE
        if alert.type == "CRITICAL_LAYER_FAILURE":
            return stage.success_rate >= CRITICAL_LAYER_RATE
        if alert.type == "LAYER_SLOW_PERFORMANCE":
            return stage.avg_time_ms <= thresholds.max_layer_time_ms
        return False

    def _create_alert(self, alert_type: str, message: str, stage: Optional[str] = None) -> None:
        """Raise an alert, or refresh the message of the active one for the same type and stage."""
        for active in self.active_alerts:
            if active.type == alert_type and active.stage == stage:
                active.message = message
                return
        alert = Alert(
            id=f"alert-{uuid.uuid4().hex[:12]}",
            type=alert_type,
            message=message,
            severity=ALERT_SEVERITY.get(alert_type, "low"),
            created_at=_now(),
            stage=stage,
        )
        self.active_alerts.append(alert)
        logger.warning("[monitor] New alert %s (%s): %s", alert_type, alert.severity, message)

    def _overall_status(self) -> str:
        severities = {a.severity for a in self.active_alerts}
        if "critical" in severities:
            return "critical"
        if "high" in severities:
            return "degraded"
        if self.active_alerts:
            return "warning"
        return "healthy"

    @staticmethod
    def _stage_status(metrics: StageMetrics) -> str:
        if metrics.success_rate < 0.5:
            return "critical"
        if metrics.success_rate < 0.8:
            return "degraded"
        if len(metrics.failures) > 3:
            return "warning"
        return "healthy"

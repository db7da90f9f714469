"""
NetWarden Monitoring Service

Wires the registry, capture manager, observer, detector, emitter and
scheduler together and exposes the operations used by the API and CLI.
"""

import structlog

from netwarden.ai.classifier import Classifier, LLMClassifier
from netwarden.analysis.anomaly import AnomalyDetector
from netwarden.analysis.survey import HostSurveyor
from netwarden.capture.session import CaptureManager
from netwarden.config import settings
from netwarden.monitoring.emitter import FindingEmitter
from netwarden.monitoring.observer import TrafficObserver
from netwarden.monitoring.registry import MonitoringTarget, TargetRegistry
from netwarden.monitoring.scheduler import MonitoringScheduler, ScanResult
from netwarden.monitoring.store import FindingStore, JsonlFindingStore

logger = structlog.get_logger(__name__)


class MonitoringService:
    """Facade over the monitoring engine."""

    def __init__(
        self,
        registry: TargetRegistry | None = None,
        capture_manager: CaptureManager | None = None,
        observer: TrafficObserver | None = None,
        detector: AnomalyDetector | None = None,
        classifier: Classifier | None = None,
        store: FindingStore | None = None,
        scan_duration: float | None = None,
        baseline_duration: float | None = None,
        surveyor: HostSurveyor | None = None,
    ):
        self.registry = registry if registry is not None else TargetRegistry()
        self.capture_manager = capture_manager or CaptureManager(registry=self.registry)
        self.observer = observer or TrafficObserver(self.capture_manager)
        if surveyor is None and settings.survey_enabled:
            surveyor = HostSurveyor()
        self.emitter = FindingEmitter(
            classifier=classifier or LLMClassifier(),
            store=store or JsonlFindingStore(),
        )
        self.scheduler = MonitoringScheduler(
            registry=self.registry,
            observer=self.observer,
            detector=detector or AnomalyDetector(),
            emitter=self.emitter,
            scan_duration=scan_duration,
            baseline_duration=baseline_duration,
            surveyor=surveyor,
        )

    async def start_monitoring(self, ip: str, interval_minutes: float | None = None) -> str:
        """Start (or restart) recurring monitoring. Returns the canonical IP."""
        return await self.scheduler.start(ip, interval_minutes)

    async def stop_monitoring(self, ip: str) -> bool:
        """Stop monitoring; unknown targets are a no-op."""
        return await self.scheduler.stop(ip)

    def list_monitored_ips(self) -> list[str]:
        return self.scheduler.list()

    def get_target(self, ip: str) -> MonitoringTarget | None:
        return self.registry.get(ip)

    async def run_once_scan(self, ip: str) -> ScanResult:
        """Run a single scan cycle inline and return its result."""
        return await self.scheduler.run_once(ip)

    def reset_baseline(self, ip: str) -> bool:
        return self.scheduler.reset_baseline(ip)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()


# =============================================================================
# Singleton Instance
# =============================================================================


_service_instance: MonitoringService | None = None


def get_monitoring_service() -> MonitoringService:
    """Get the singleton monitoring service instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = MonitoringService()
    return _service_instance

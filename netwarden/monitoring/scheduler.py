"""
NetWarden Monitoring Scheduler

Runs one recurring schedule per monitored target. Each schedule is a
single asyncio task that runs scan cycles back to back: a cycle runs
immediately, then the task sleeps for whatever remains of the
interval. Cycles for one target never overlap; an overrunning cycle
delays the next one.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from netwarden.ai.classifier import Classification
from netwarden.analysis.anomaly import AnomalyDetector
from netwarden.analysis.models import Baseline, TrafficProfile, normalize_ip
from netwarden.analysis.survey import HostSurvey, HostSurveyor
from netwarden.config import settings
from netwarden.monitoring.emitter import FindingEmitter
from netwarden.monitoring.observer import TrafficObserver
from netwarden.monitoring.registry import TargetRegistry, TargetState

logger = structlog.get_logger(__name__)


@dataclass
class ScanResult:
    """Outcome of one scan cycle."""

    target_ip: str
    timestamp: datetime
    profile: TrafficProfile
    baseline: TrafficProfile
    anomalies: list[str] = field(default_factory=list)
    classification: Classification | None = None
    degraded: bool = False
    """True when the scan's capture failed transiently or was stopped."""
    survey: HostSurvey | None = None
    """Reachability and open ports, when a surveyor is configured."""

    @property
    def suspicious(self) -> bool:
        return bool(self.anomalies)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "target_ip": self.target_ip,
            "timestamp": self.timestamp.isoformat(),
            "profile": self.profile.to_dict(),
            "baseline": self.baseline.to_dict(),
            "anomalies": list(self.anomalies),
            "suspicious": self.suspicious,
            "classification": self.classification.to_dict() if self.classification else None,
            "degraded": self.degraded,
            "survey": self.survey.to_dict() if self.survey else None,
        }


class MonitoringScheduler:
    """Per-target recurring scan cycles."""

    def __init__(
        self,
        registry: TargetRegistry,
        observer: TrafficObserver,
        detector: AnomalyDetector,
        emitter: FindingEmitter,
        scan_duration: float | None = None,
        baseline_duration: float | None = None,
        surveyor: HostSurveyor | None = None,
    ):
        self.registry = registry
        self.observer = observer
        self.detector = detector
        self.emitter = emitter
        self.surveyor = surveyor
        self.scan_duration = scan_duration or settings.scan_duration_seconds
        self.baseline_duration = baseline_duration or settings.baseline_duration_seconds

    # -------------------------------------------------------------------------
    # Scan Cycle
    # -------------------------------------------------------------------------

    async def establish_baseline(self, ip: str) -> Baseline | None:
        """
        Observe a target over the baseline window and cache the result.

        A degraded observation is not cached, so the next cycle retries.
        """
        self.registry.set_state(ip, TargetState.BASELINE_PENDING)
        logger.info("baseline_establishing", target_ip=ip, duration=self.baseline_duration)

        observation = await self.observer.observe(ip, self.baseline_duration)
        if observation.degraded:
            logger.warning("baseline_degraded", target_ip=ip)
            return None

        baseline = Baseline(profile=observation.profile)
        if not self.registry.set_baseline(ip, baseline):
            logger.info("baseline_discarded", target_ip=ip, reason="target_removed")
            return None

        logger.info(
            "baseline_established",
            target_ip=ip,
            packets_per_second=round(baseline.profile.packets_per_second, 3),
            unique_sources=baseline.profile.unique_source_count,
        )
        return baseline

    async def cycle(self, ip: str) -> ScanResult:
        """
        Run one scan cycle for a target.

        The target must already be registered. Establishes the baseline
        first if none is cached. Configuration errors propagate; transient
        capture errors yield a degraded result.
        """
        baseline = self.registry.get_baseline(ip)
        if baseline is None:
            baseline = await self.establish_baseline(ip)
            if baseline is None:
                self.registry.set_state(ip, TargetState.IDLE)
                return ScanResult(
                    target_ip=ip,
                    timestamp=datetime.now(),
                    profile=TrafficProfile(),
                    baseline=TrafficProfile(),
                    degraded=True,
                )

        self.registry.set_state(ip, TargetState.ACTIVE)

        observation = await self.observer.observe(ip, self.scan_duration)
        if observation.degraded:
            return ScanResult(
                target_ip=ip,
                timestamp=datetime.now(),
                profile=observation.profile,
                baseline=baseline.profile,
                degraded=True,
            )

        # Surveyed only after the capture closed so its own packets stay out of the profile
        survey = await self.surveyor.survey(ip) if self.surveyor is not None else None

        finding = self.detector.evaluate(ip, observation.profile, baseline.profile, survey)

        classification = None
        if finding.suspicious:
            classification = await self.emitter.emit(finding)

        logger.info(
            "scan_cycle_complete",
            target_ip=ip,
            suspicious=finding.suspicious,
            anomalies=len(finding.anomalies),
        )

        return ScanResult(
            target_ip=ip,
            timestamp=finding.timestamp,
            profile=finding.profile,
            baseline=finding.baseline,
            anomalies=finding.anomalies,
            classification=classification,
            survey=survey,
        )

    async def _run_schedule(self, ip: str, interval_minutes: float) -> None:
        """Cycle forever until cancelled."""
        interval = interval_minutes * 60

        while True:
            started = time.monotonic()

            try:
                await self.cycle(ip)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "scan_cycle_failed",
                    target_ip=ip,
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )

            elapsed = time.monotonic() - started
            if elapsed > interval:
                logger.warning(
                    "scan_cycle_overrun",
                    target_ip=ip,
                    elapsed=round(elapsed, 2),
                    interval=interval,
                )

            await asyncio.sleep(max(0.0, interval - elapsed))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, ip: str, interval_minutes: float | None = None) -> str:
        """
        Arm a recurring schedule for a target.

        An existing schedule for the same target is replaced.

        Returns:
            The canonical IP

        Raises:
            InvalidTargetError: If ip is not an IP address
            ValueError: If the interval is not positive
        """
        ip = normalize_ip(ip)
        if interval_minutes is None:
            interval_minutes = settings.default_interval_minutes
        if interval_minutes <= 0:
            raise ValueError(f"Interval must be positive, got {interval_minutes}")

        target = self.registry.get(ip)
        if target is not None and target.task is not None:
            await self._cancel(target.task)

        task = asyncio.create_task(
            self._run_schedule(ip, interval_minutes),
            name=f"netwarden-monitor-{ip}",
        )
        self.registry.set_schedule(ip, task, interval_minutes)

        logger.info("monitoring_started", target_ip=ip, interval_minutes=interval_minutes)
        return ip

    async def stop(self, ip: str) -> bool:
        """
        Stop monitoring a target.

        Cancels the schedule and any one-time scan in flight, terminates
        the target's capture and removes its registry entry. Idempotent;
        unknown or invalid targets are a no-op.

        Returns:
            True if the target was being monitored
        """
        try:
            ip = normalize_ip(ip)
        except ValueError:
            return False

        if self.registry.get(ip) is None:
            return False

        # Schedule and one-time scans alike, so none outlives the stop
        for task in self.registry.tasks(ip):
            await self._cancel(task)

        await self.observer.capture_manager.stop_target(ip)
        self.registry.remove(ip)

        logger.info("monitoring_stopped", target_ip=ip)
        return True

    async def _cancel(self, task: asyncio.Task) -> None:
        if task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def list(self) -> list[str]:
        """IPs with an armed schedule."""
        return self.registry.scheduled_ips()

    async def run_once(self, ip: str) -> ScanResult:
        """
        Run one scan cycle and wait for it.

        The cycle runs as its own task, tracked on the target, so that
        stop() can cancel it. A scan cancelled that way returns a
        degraded result.

        Raises:
            ConfigurationError: Invalid target or capture misconfiguration
        """
        ip = normalize_ip(ip)
        self.registry.ensure(ip)

        task = asyncio.create_task(self.cycle(ip), name=f"netwarden-scan-{ip}")
        self.registry.add_scan(ip, task)
        try:
            # wait() keeps the scan's own cancellation from reaching us
            await asyncio.wait([task])
        except asyncio.CancelledError:
            await self._cancel(task)
            raise
        finally:
            self.registry.discard_scan(ip, task)

        if task.cancelled():
            logger.info("scan_cancelled", target_ip=ip)
            return ScanResult(
                target_ip=ip,
                timestamp=datetime.now(),
                profile=TrafficProfile(),
                baseline=TrafficProfile(),
                degraded=True,
            )
        return task.result()

    def reset_baseline(self, ip: str) -> bool:
        """Drop a target's cached baseline so the next cycle re-establishes it."""
        ip = normalize_ip(ip)
        cleared = self.registry.clear_baseline(ip)
        if cleared:
            logger.info("baseline_reset", target_ip=ip)
        return cleared

    async def shutdown(self) -> None:
        """Stop every target and remove leftover capture artifacts."""
        ips = self.registry.ips()
        for ip in ips:
            await self.stop(ip)

        self.observer.capture_manager.cleanup_artifacts()
        logger.info("monitoring_shutdown", stopped=len(ips))

"""
Tests for the monitoring scheduler and service.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from netwarden.ai.classifier import FALLBACK_CLASSIFICATION
from netwarden.analysis.anomaly import AnomalyDetector
from netwarden.analysis.models import TrafficProfile
from netwarden.analysis.survey import HostSurvey, OpenPort, Reachability
from netwarden.capture.session import CaptureManager
from netwarden.errors import ClassificationError, ConfigurationError, InvalidTargetError
from netwarden.monitoring.emitter import FindingEmitter
from netwarden.monitoring.observer import Observation, TrafficObserver
from netwarden.monitoring.registry import TargetRegistry, TargetState
from netwarden.monitoring.scheduler import MonitoringScheduler
from netwarden.monitoring.service import MonitoringService


class FakeObserver:
    """Returns queued observations and records the requested durations."""

    def __init__(self, *observations: Observation, block: bool = False):
        self.observations = list(observations)
        self.calls: list[tuple[str, float]] = []
        self.block = block
        self.called = asyncio.Event()
        self.capture_manager = MagicMock()
        self.capture_manager.stop_target = AsyncMock(return_value=False)

    async def observe(self, ip: str, duration: float) -> Observation:
        self.calls.append((ip, duration))
        self.called.set()
        if self.block:
            await asyncio.Event().wait()
        item = self.observations.pop(0) if self.observations else Observation(TrafficProfile())
        if isinstance(item, Exception):
            raise item
        return item


def observed(profile: TrafficProfile) -> Observation:
    return Observation(profile=profile)


def surveyor_returning(survey: HostSurvey) -> MagicMock:
    surveyor = MagicMock()
    surveyor.survey = AsyncMock(return_value=survey)
    return surveyor


LISTENING = """
touch "$6"
echo "tcpdump: listening on $2, link-type EN10MB (Ethernet)" >&2
exec sleep 30
"""


@pytest.fixture
def classifier():
    mock = MagicMock()
    mock.classify = AsyncMock(side_effect=ClassificationError("model unavailable"))
    return mock


@pytest.fixture
def store():
    mock = MagicMock()
    mock.save = AsyncMock()
    return mock


@pytest.fixture
def scheduler_for(classifier, store):
    def make(observer, registry: TargetRegistry | None = None) -> MonitoringScheduler:
        return MonitoringScheduler(
            registry=registry if registry is not None else TargetRegistry(),
            observer=observer,
            detector=AnomalyDetector(factor=2.0),
            emitter=FindingEmitter(classifier=classifier, store=store),
            scan_duration=30.0,
            baseline_duration=120.0,
        )

    return make


class TestScanCycle:
    """Tests for one-time scans."""

    @pytest.mark.asyncio
    async def test_first_scan_establishes_baseline(self, scheduler_for, make_profile, store):
        profile = make_profile(pps=10, bps=1000, sources=2, attempts=1)
        observer = FakeObserver(observed(profile), observed(make_profile(pps=11, bps=1050, sources=2, attempts=1)))
        scheduler = scheduler_for(observer)

        result = await scheduler.run_once("8.8.8.8")

        assert [d for _, d in observer.calls] == [120.0, 30.0]
        assert scheduler.registry.get_baseline("8.8.8.8").profile is profile
        assert scheduler.registry.get("8.8.8.8").state == TargetState.ACTIVE
        assert result.suspicious is False
        assert result.classification is None
        store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cached_baseline_is_reused(self, scheduler_for, make_profile):
        observer = FakeObserver(
            observed(make_profile(pps=10)),
            observed(make_profile(pps=10)),
            observed(make_profile(pps=10)),
        )
        scheduler = scheduler_for(observer)

        await scheduler.run_once("8.8.8.8")
        await scheduler.run_once("8.8.8.8")

        assert [d for _, d in observer.calls] == [120.0, 30.0, 30.0]

    @pytest.mark.asyncio
    async def test_high_packet_rate_emits_with_fallback(self, scheduler_for, make_profile, classifier, store):
        observer = FakeObserver(observed(make_profile(pps=10)), observed(make_profile(pps=55)))
        scheduler = scheduler_for(observer)

        result = await scheduler.run_once("8.8.8.8")

        assert result.suspicious is True
        assert any(a.startswith("High packet rate") for a in result.anomalies)
        assert result.classification == FALLBACK_CLASSIFICATION
        classifier.classify.assert_awaited_once()
        store.save.assert_awaited_once()
        finding, classification, _ = store.save.await_args.args
        assert finding.target_ip == "8.8.8.8"
        assert classification == FALLBACK_CLASSIFICATION

    @pytest.mark.asyncio
    async def test_degraded_baseline_is_not_cached(self, scheduler_for, make_profile):
        observer = FakeObserver(Observation(TrafficProfile(), degraded=True))
        scheduler = scheduler_for(observer)

        result = await scheduler.run_once("8.8.8.8")

        assert result.degraded
        assert scheduler.registry.get_baseline("8.8.8.8") is None
        # No scan window after a failed baseline
        assert len(observer.calls) == 1

    @pytest.mark.asyncio
    async def test_degraded_scan_reports_no_anomalies(self, scheduler_for, make_profile, store):
        observer = FakeObserver(observed(make_profile(pps=10)), Observation(TrafficProfile(), degraded=True))
        scheduler = scheduler_for(observer)

        result = await scheduler.run_once("8.8.8.8")

        assert result.degraded
        assert result.anomalies == []
        store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_survey_feeds_exposure_anomaly(self, scheduler_for, make_profile, store):
        observer = FakeObserver(observed(make_profile(pps=10)), observed(make_profile(pps=10)))
        scheduler = scheduler_for(observer)
        survey = HostSurvey(
            reachability=Reachability(packet_loss=0.0, response_time_ms=12.5),
            open_ports=[OpenPort(port) for port in (21, 22, 80, 443, 8080, 8443)],
        )
        scheduler.surveyor = surveyor_returning(survey)

        result = await scheduler.run_once("8.8.8.8")

        scheduler.surveyor.survey.assert_awaited_once_with("8.8.8.8")
        assert result.survey is survey
        assert result.anomalies == [
            "Exposed services: 6 open TCP ports including commonly attacked ports 21, 22, 80, 443"
        ]
        finding = store.save.await_args.args[0]
        assert finding.survey is survey
        assert result.to_dict()["survey"]["reachability"]["reachable"] is True

    @pytest.mark.asyncio
    async def test_degraded_scan_skips_survey(self, scheduler_for, make_profile):
        observer = FakeObserver(observed(make_profile(pps=10)), Observation(TrafficProfile(), degraded=True))
        scheduler = scheduler_for(observer)
        scheduler.surveyor = surveyor_returning(HostSurvey())

        result = await scheduler.run_once("8.8.8.8")

        assert result.degraded
        assert result.survey is None
        scheduler.surveyor.survey.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_target(self, scheduler_for):
        scheduler = scheduler_for(FakeObserver())

        with pytest.raises(InvalidTargetError):
            await scheduler.run_once("999.1.1.1")

    @pytest.mark.asyncio
    async def test_permission_denied_propagates_without_artifacts(
        self, scheduler_for, fake_tool, temp_capture_dir
    ):
        tool = fake_tool(
            "tcpdump",
            """
touch "$6"
echo "tcpdump: $2: You don't have permission to capture on that device" >&2
exit 1
""",
        )
        registry = TargetRegistry()
        manager = CaptureManager(registry=registry, tool=str(tool), temp_dir=temp_capture_dir)
        scheduler = scheduler_for(TrafficObserver(manager), registry=registry)

        with pytest.raises(ConfigurationError):
            await scheduler.run_once("8.8.8.8")

        assert list(temp_capture_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_reset_baseline(self, scheduler_for, make_profile):
        observer = FakeObserver(*(observed(make_profile(pps=10)) for _ in range(4)))
        scheduler = scheduler_for(observer)

        await scheduler.run_once("8.8.8.8")
        assert scheduler.reset_baseline("8.8.8.8") is True
        assert scheduler.reset_baseline("8.8.8.8") is False

        await scheduler.run_once("8.8.8.8")
        assert [d for _, d in observer.calls] == [120.0, 30.0, 120.0, 30.0]


class TestSchedules:
    """Tests for recurring schedules."""

    @pytest.mark.asyncio
    async def test_start_arms_schedule(self, scheduler_for):
        observer = FakeObserver(block=True)
        scheduler = scheduler_for(observer)

        ip = await scheduler.start("8.8.8.8", 5)
        await asyncio.wait_for(observer.called.wait(), timeout=1.0)

        assert ip == "8.8.8.8"
        assert scheduler.list() == ["8.8.8.8"]
        assert scheduler.registry.get("8.8.8.8").state == TargetState.BASELINE_PENDING

        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_schedule(self, scheduler_for):
        observer = FakeObserver(block=True)
        scheduler = scheduler_for(observer)

        await scheduler.start("8.8.8.8", 5)
        first_task = scheduler.registry.get("8.8.8.8").task
        await scheduler.start("8.8.8.8", 10)

        target = scheduler.registry.get("8.8.8.8")
        assert scheduler.list() == ["8.8.8.8"]
        assert target.interval_minutes == 10
        assert first_task.cancelled()
        assert target.task is not first_task

        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_rejects_bad_input(self, scheduler_for):
        scheduler = scheduler_for(FakeObserver())

        with pytest.raises(InvalidTargetError):
            await scheduler.start("nope", 5)
        with pytest.raises(ValueError):
            await scheduler.start("8.8.8.8", 0)

        assert scheduler.list() == []

    @pytest.mark.asyncio
    async def test_stop(self, scheduler_for):
        observer = FakeObserver(block=True)
        scheduler = scheduler_for(observer)
        await scheduler.start("8.8.8.8", 5)
        task = scheduler.registry.get("8.8.8.8").task

        assert await scheduler.stop("8.8.8.8") is True

        assert task.cancelled()
        assert scheduler.list() == []
        assert scheduler.registry.get("8.8.8.8") is None
        observer.capture_manager.stop_target.assert_awaited_once_with("8.8.8.8")

    @pytest.mark.asyncio
    async def test_stop_unknown_is_noop(self, scheduler_for):
        scheduler = scheduler_for(FakeObserver())

        assert await scheduler.stop("10.9.8.7") is False
        assert await scheduler.stop("not-an-ip") is False

    @pytest.mark.asyncio
    async def test_failed_cycle_keeps_schedule(self, scheduler_for, make_profile):
        observer = FakeObserver(RuntimeError("capture exploded"), observed(make_profile(pps=10)))
        scheduler = scheduler_for(observer)

        # 0.001 minutes between cycles
        await scheduler.start("8.8.8.8", 0.001)
        for _ in range(100):
            if len(observer.calls) >= 2:
                break
            await asyncio.sleep(0.02)

        assert len(observer.calls) >= 2
        assert scheduler.list() == ["8.8.8.8"]

        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_stops_everything(self, scheduler_for):
        observer = FakeObserver(block=True)
        scheduler = scheduler_for(observer)
        await scheduler.start("8.8.8.8", 5)
        await scheduler.start("10.0.0.5", 5)

        await scheduler.shutdown()

        assert scheduler.list() == []
        assert len(scheduler.registry) == 0
        observer.capture_manager.cleanup_artifacts.assert_called_once()


class TestMonitoringService:
    """Tests for the facade wiring."""

    @pytest.mark.asyncio
    async def test_operations_delegate(self, classifier, store, make_profile):
        observer = FakeObserver(observed(make_profile(pps=10)), observed(make_profile(pps=55)))
        service = MonitoringService(
            observer=observer,
            classifier=classifier,
            store=store,
            surveyor=surveyor_returning(HostSurvey()),
        )

        result = await service.run_once_scan("8.8.8.8")
        assert result.suspicious

        observer.block = True
        assert await service.start_monitoring("8.8.8.8", 5) == "8.8.8.8"
        assert service.list_monitored_ips() == ["8.8.8.8"]
        assert service.reset_baseline("8.8.8.8") is True

        assert await service.stop_monitoring("8.8.8.8") is True
        assert service.list_monitored_ips() == []

        await service.shutdown()


class TestStopDuringCapture:
    """Stopping a target while its capture is running."""

    @pytest.fixture
    def live_scheduler(self, scheduler_for, fake_tool, temp_capture_dir):
        registry = TargetRegistry()
        manager = CaptureManager(
            registry=registry,
            tool=str(fake_tool("tcpdump", LISTENING)),
            temp_dir=temp_capture_dir,
            stop_timeout=2.0,
        )
        observer = TrafficObserver(manager, parse=AsyncMock(return_value=[]))
        return scheduler_for(observer, registry=registry)

    async def wait_for_capture(self, registry: TargetRegistry, ip: str):
        for _ in range(100):
            session = registry.get_session(ip)
            if session is not None:
                return session
            await asyncio.sleep(0.02)
        raise AssertionError(f"no capture started for {ip}")

    @pytest.mark.asyncio
    async def test_stop_cancels_one_time_scan(self, live_scheduler, store, temp_capture_dir):
        registry = live_scheduler.registry
        scan = asyncio.create_task(live_scheduler.run_once("8.8.8.8"))
        session = await self.wait_for_capture(registry, "8.8.8.8")

        assert await live_scheduler.stop("8.8.8.8") is True
        result = await scan

        assert result.degraded
        assert result.anomalies == []
        assert session.process.returncode is not None
        assert registry.get("8.8.8.8") is None
        assert len(registry) == 0
        store.save.assert_not_awaited()
        assert list(temp_capture_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_stop_terminates_scheduled_capture(self, live_scheduler, temp_capture_dir):
        registry = live_scheduler.registry
        await live_scheduler.start("8.8.8.8", 5)
        session = await self.wait_for_capture(registry, "8.8.8.8")

        assert await live_scheduler.stop("8.8.8.8") is True

        assert session.process.returncode is not None
        assert registry.get("8.8.8.8") is None
        assert live_scheduler.list() == []
        assert list(temp_capture_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_removed_target_keeps_no_baseline(self, scheduler_for, make_profile):
        observer = FakeObserver(block=True)
        scheduler = scheduler_for(observer)

        scan = asyncio.create_task(scheduler.run_once("8.8.8.8"))
        await asyncio.wait_for(observer.called.wait(), timeout=1.0)
        await scheduler.stop("8.8.8.8")
        result = await scan

        assert result.degraded
        assert scheduler.registry.get("8.8.8.8") is None
        assert scheduler.registry.set_baseline("8.8.8.8", MagicMock()) is False
        assert len(scheduler.registry) == 0

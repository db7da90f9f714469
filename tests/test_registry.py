"""
Tests for the target registry.
"""

import threading

from unittest.mock import MagicMock

from netwarden.analysis.models import Baseline, TrafficProfile
from netwarden.monitoring.registry import TargetRegistry, TargetState


class TestTargetRegistry:
    """Tests for keyed target state."""

    def test_ensure_creates_idle_entry_once(self):
        registry = TargetRegistry()

        first = registry.ensure("10.0.0.5")
        second = registry.ensure("10.0.0.5")

        assert first is second
        assert first.state == TargetState.IDLE
        assert len(registry) == 1

    def test_baseline_lifecycle(self):
        registry = TargetRegistry()
        baseline = Baseline(profile=TrafficProfile(packets_per_second=3.0))
        registry.ensure("10.0.0.5")

        assert registry.set_baseline("10.0.0.5", baseline) is True

        assert registry.get_baseline("10.0.0.5") is baseline
        assert registry.clear_baseline("10.0.0.5") is True
        assert registry.get_baseline("10.0.0.5") is None
        assert registry.clear_baseline("10.0.0.5") is False
        assert registry.clear_baseline("10.9.9.9") is False

    def test_clear_session_only_clears_matching(self):
        registry = TargetRegistry()
        old, new = MagicMock(), MagicMock()
        registry.ensure("10.0.0.5")
        registry.set_session("10.0.0.5", new)

        registry.clear_session("10.0.0.5", old)
        assert registry.get_session("10.0.0.5") is new

        registry.clear_session("10.0.0.5", new)
        assert registry.get_session("10.0.0.5") is None

    def test_scheduled_ips_only_lists_armed_tasks(self):
        registry = TargetRegistry()
        running = MagicMock()
        running.done.return_value = False
        finished = MagicMock()
        finished.done.return_value = True

        registry.set_schedule("10.0.0.7", running, 5)
        registry.set_schedule("10.0.0.6", finished, 5)
        registry.ensure("10.0.0.8")

        assert registry.scheduled_ips() == ["10.0.0.7"]
        assert registry.ips() == ["10.0.0.6", "10.0.0.7", "10.0.0.8"]

    def test_setters_do_not_recreate_removed_target(self):
        registry = TargetRegistry()
        registry.ensure("10.0.0.5")
        registry.remove("10.0.0.5")

        assert registry.set_baseline("10.0.0.5", Baseline(profile=TrafficProfile())) is False
        assert registry.set_session("10.0.0.5", MagicMock()) is False
        assert registry.add_scan("10.0.0.5", MagicMock()) is False
        assert registry.get("10.0.0.5") is None
        assert len(registry) == 0

    def test_tasks_include_scans_and_schedule(self):
        registry = TargetRegistry()
        schedule, scan = MagicMock(), MagicMock()
        registry.set_schedule("10.0.0.5", schedule, 5)

        assert registry.add_scan("10.0.0.5", scan) is True
        assert set(registry.tasks("10.0.0.5")) == {schedule, scan}

        registry.discard_scan("10.0.0.5", scan)
        assert registry.tasks("10.0.0.5") == [schedule]
        assert registry.tasks("10.9.9.9") == []

    def test_remove_marks_stopped(self):
        registry = TargetRegistry()
        registry.ensure("10.0.0.5")

        target = registry.remove("10.0.0.5")

        assert target.state == TargetState.STOPPED
        assert registry.get("10.0.0.5") is None
        assert registry.remove("10.0.0.5") is None

    def test_to_dict(self):
        registry = TargetRegistry()
        target = registry.ensure("10.0.0.5")

        data = target.to_dict()

        assert data == {
            "ip": "10.0.0.5",
            "state": "idle",
            "scheduled": False,
            "interval_minutes": None,
            "baseline": None,
            "capturing": False,
            "scans_in_flight": 0,
        }

    def test_concurrent_access(self):
        registry = TargetRegistry()

        def worker(n: int) -> None:
            for i in range(200):
                ip = f"10.0.{n}.{i % 50}"
                registry.ensure(ip)
                registry.set_state(ip, TargetState.ACTIVE)
                registry.remove(ip)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 0

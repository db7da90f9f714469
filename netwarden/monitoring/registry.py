"""
NetWarden Target Registry

The single owned registry of monitored targets. Holds each target's
schedule handle, cached baseline and active capture session behind
one lock; every operation is a short get/set/delete keyed by IP.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from netwarden.analysis.models import Baseline

if TYPE_CHECKING:
    from netwarden.capture.session import CaptureSession

logger = structlog.get_logger(__name__)


class TargetState(str, Enum):
    """Lifecycle state of a monitored target."""

    IDLE = "idle"
    BASELINE_PENDING = "baseline_pending"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass
class MonitoringTarget:
    """One monitored IP and everything the engine holds for it."""

    ip: str
    state: TargetState = TargetState.IDLE
    baseline: Baseline | None = None
    session: "CaptureSession | None" = None
    task: asyncio.Task | None = None
    interval_minutes: float | None = None
    scans: set[asyncio.Task] = field(default_factory=set)
    """One-time scans currently running for this target."""

    @property
    def is_scheduled(self) -> bool:
        """True while a recurring schedule is armed."""
        return self.task is not None and not self.task.done()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ip": self.ip,
            "state": self.state.value,
            "scheduled": self.is_scheduled,
            "interval_minutes": self.interval_minutes,
            "baseline": self.baseline.to_dict() if self.baseline else None,
            "capturing": self.session is not None,
            "scans_in_flight": len(self.scans),
        }


class TargetRegistry:
    """
    Thread-safe registry of MonitoringTarget entries keyed by IP.

    Entries are created explicitly (ensure, set_schedule) and removed on
    stop. Setters never recreate a removed entry, so work that outlives a
    stop cannot bring its target back.
    """

    def __init__(self) -> None:
        self._targets: dict[str, MonitoringTarget] = {}
        self._lock = threading.RLock()

    def get(self, ip: str) -> MonitoringTarget | None:
        with self._lock:
            return self._targets.get(ip)

    def ensure(self, ip: str) -> MonitoringTarget:
        """Get the entry for ip, creating an idle one if needed."""
        with self._lock:
            target = self._targets.get(ip)
            if target is None:
                target = MonitoringTarget(ip=ip)
                self._targets[ip] = target
                logger.debug("target_registered", ip=ip)
            return target

    def remove(self, ip: str) -> MonitoringTarget | None:
        """Remove the entry for ip, marking it stopped."""
        with self._lock:
            target = self._targets.pop(ip, None)
        if target is not None:
            target.state = TargetState.STOPPED
            logger.debug("target_removed", ip=ip)
        return target

    def set_state(self, ip: str, state: TargetState) -> None:
        with self._lock:
            target = self._targets.get(ip)
            if target is not None:
                target.state = state

    # -------------------------------------------------------------------------
    # Baselines
    # -------------------------------------------------------------------------

    def get_baseline(self, ip: str) -> Baseline | None:
        with self._lock:
            target = self._targets.get(ip)
            return target.baseline if target else None

    def set_baseline(self, ip: str, baseline: Baseline) -> bool:
        """Cache a baseline. Returns False if the target is not registered."""
        with self._lock:
            target = self._targets.get(ip)
            if target is None:
                return False
            target.baseline = baseline
            return True

    def clear_baseline(self, ip: str) -> bool:
        """Drop a cached baseline. Returns True if one was cached."""
        with self._lock:
            target = self._targets.get(ip)
            if target is None or target.baseline is None:
                return False
            target.baseline = None
            return True

    # -------------------------------------------------------------------------
    # Capture Sessions
    # -------------------------------------------------------------------------

    def get_session(self, ip: str) -> "CaptureSession | None":
        with self._lock:
            target = self._targets.get(ip)
            return target.session if target else None

    def set_session(self, ip: str, session: "CaptureSession") -> bool:
        """Record the active session. Returns False if the target is not registered."""
        with self._lock:
            target = self._targets.get(ip)
            if target is None:
                return False
            target.session = session
            return True

    def clear_session(self, ip: str, session: "CaptureSession") -> None:
        """Forget the target's session, but only if it is still this one."""
        with self._lock:
            target = self._targets.get(ip)
            if target is not None and target.session is session:
                target.session = None

    # -------------------------------------------------------------------------
    # Schedules
    # -------------------------------------------------------------------------

    def set_schedule(self, ip: str, task: asyncio.Task, interval_minutes: float) -> None:
        with self._lock:
            target = self.ensure(ip)
            target.task = task
            target.interval_minutes = interval_minutes

    def add_scan(self, ip: str, task: asyncio.Task) -> bool:
        """Track a one-time scan so a stop can cancel it."""
        with self._lock:
            target = self._targets.get(ip)
            if target is None:
                return False
            target.scans.add(task)
            return True

    def discard_scan(self, ip: str, task: asyncio.Task) -> None:
        with self._lock:
            target = self._targets.get(ip)
            if target is not None:
                target.scans.discard(task)

    def tasks(self, ip: str) -> list[asyncio.Task]:
        """Schedule and one-time scan tasks running for a target."""
        with self._lock:
            target = self._targets.get(ip)
            if target is None:
                return []
            tasks = list(target.scans)
            if target.task is not None:
                tasks.append(target.task)
            return tasks

    def scheduled_ips(self) -> list[str]:
        """IPs with an armed recurring schedule."""
        with self._lock:
            return sorted(ip for ip, t in self._targets.items() if t.is_scheduled)

    def ips(self) -> list[str]:
        """All registered IPs."""
        with self._lock:
            return sorted(self._targets)

    def __len__(self) -> int:
        with self._lock:
            return len(self._targets)

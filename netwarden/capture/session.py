"""
NetWarden Capture Sessions

Starts and stops tcpdump for one target at a time.

Startup is a single awaited operation: the tool's stderr is read
until it reports that it is listening, refuses permission, or cannot
find the interface, all within a bounded timeout. Every failure path
kills the subprocess and removes the capture artifact before raising.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

import structlog

from netwarden.analysis.models import normalize_ip
from netwarden.config import settings
from netwarden.errors import (
    CaptureDeviceError,
    CaptureInterruptedError,
    CapturePermissionError,
    CaptureProcessError,
    CaptureStartTimeout,
)
from netwarden.monitoring.registry import TargetRegistry

logger = structlog.get_logger(__name__)

ARTIFACT_PREFIX = "capture_"
ARTIFACT_SUFFIX = ".pcap"


# =============================================================================
# Start Signals
# =============================================================================


class StartSignal(str, Enum):
    """What the capture tool reported while starting up."""

    LISTENING = "listening"
    PERMISSION_DENIED = "permission_denied"
    DEVICE_MISSING = "device_missing"
    EXITED = "exited"


# Checked in order; the first matching phrase wins.
STDERR_SIGNALS: list[tuple[StartSignal, tuple[str, ...]]] = [
    (StartSignal.PERMISSION_DENIED, ("permission", "operation not permitted")),
    (StartSignal.DEVICE_MISSING, ("no such device", "doesn't exist", "does not exist")),
    (StartSignal.LISTENING, ("listening on",)),
]


def classify_stderr(line: str) -> StartSignal | None:
    """Map one stderr line from the capture tool to a start signal."""
    lowered = line.lower()
    for signal, phrases in STDERR_SIGNALS:
        if any(phrase in lowered for phrase in phrases):
            return signal
    return None


# =============================================================================
# Capture Session
# =============================================================================


class CaptureStatus(str, Enum):
    """Capture session lifecycle."""

    STARTING = "starting"
    CAPTURING = "capturing"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass
class CaptureSession:
    """A running (or finished) capture for one target."""

    target_ip: str
    artifact: Path
    interface: str
    process: asyncio.subprocess.Process | None = None
    status: CaptureStatus = CaptureStatus.STARTING
    started_at: datetime = field(default_factory=datetime.now)
    stderr_task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def is_active(self) -> bool:
        return self.status in (CaptureStatus.STARTING, CaptureStatus.CAPTURING)


# =============================================================================
# Capture Manager
# =============================================================================


class CaptureManager:
    """
    Owns capture subprocesses, one active session per target.

    Sessions are recorded in the target registry so a stop request
    for a target can reach its in-flight capture. Captures only run for
    registered targets; a target removed while its capture was starting
    gets no session.
    """

    def __init__(
        self,
        registry: TargetRegistry | None = None,
        tool: str | None = None,
        interface: str | None = None,
        fallback_interface: str | None = None,
        start_timeout: float | None = None,
        stop_timeout: float | None = None,
        temp_dir: Path | None = None,
    ):
        self.registry = registry if registry is not None else TargetRegistry()
        self.tool = tool or settings.capture_tool
        self.interface = interface or settings.capture_interface
        self.fallback_interface = fallback_interface or settings.capture_fallback_interface
        self.start_timeout = start_timeout or settings.capture_start_timeout
        self.stop_timeout = stop_timeout or settings.capture_stop_timeout
        self.temp_dir = temp_dir or settings.temp_dir

    def artifact_path(self, ip: str) -> Path:
        """Unique artifact path for a target and start time."""
        slug = ip.replace(":", "-").replace(".", "_")
        millis = int(time.time() * 1000)
        name = f"{ARTIFACT_PREFIX}{slug}_{millis}_{uuid.uuid4().hex[:8]}{ARTIFACT_SUFFIX}"
        return self.temp_dir / name

    def build_command(self, ip: str, interface: str, artifact: Path) -> list[str]:
        """
        Capture command for a target.

        The bare 'host' primitive matches the address as source or
        destination on IP, IPv6 and ARP alike.
        """
        command = [self.tool, "-i", interface, "-n", "-U", "-w", str(artifact)]
        if settings.capture_user:
            command += ["-Z", settings.capture_user]
        return command + ["host", ip]

    async def start_capture(self, ip: str) -> CaptureSession:
        """
        Start capturing traffic to and from a target.

        Any session already active for the target is stopped first.

        Raises:
            InvalidTargetError: Not an IP address
            CapturePermissionError: The tool may not open the interface
            CaptureDeviceError: Neither interface exists
            CaptureStartTimeout: The tool never started listening
            CaptureProcessError: The tool could not run or exited early
            CaptureInterruptedError: The target was removed while starting
        """
        ip = normalize_ip(ip)

        existing = self.registry.get_session(ip)
        if existing is not None:
            logger.info("capture_replacing_session", target_ip=ip, artifact=str(existing.artifact))
            await self.stop_capture(existing)
            self.discard(existing)

        self.temp_dir.mkdir(parents=True, exist_ok=True)

        try:
            session = await self._launch(ip, self.interface)
        except CaptureDeviceError:
            if self.interface == self.fallback_interface:
                raise
            logger.warning(
                "capture_device_missing",
                target_ip=ip,
                interface=self.interface,
                fallback=self.fallback_interface,
            )
            session = await self._launch(ip, self.fallback_interface)

        if not self.registry.set_session(ip, session):
            await self._abort(session)
            raise CaptureInterruptedError(f"Target {ip} is not registered; capture abandoned")
        return session

    async def _launch(self, ip: str, interface: str) -> CaptureSession:
        """Spawn the capture tool on one interface and wait for it to listen."""
        artifact = self.artifact_path(ip)
        session = CaptureSession(target_ip=ip, artifact=artifact, interface=interface)
        command = self.build_command(ip, interface, artifact)

        logger.debug("capture_launching", target_ip=ip, command=" ".join(command))

        try:
            session.process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            session.status = CaptureStatus.FAILED
            raise CaptureProcessError(f"Unable to launch {self.tool}: {e}") from e

        try:
            signal, detail = await asyncio.wait_for(
                self._await_start_signal(session.process),
                timeout=self.start_timeout,
            )
        except asyncio.TimeoutError:
            await self._abort(session)
            raise CaptureStartTimeout(
                f"{self.tool} did not start listening on {interface} "
                f"within {self.start_timeout:.1f}s"
            ) from None
        except BaseException:
            await self._abort(session)
            raise

        if signal == StartSignal.LISTENING:
            session.status = CaptureStatus.CAPTURING
            session.stderr_task = asyncio.create_task(self._drain_stderr(session))
            logger.info(
                "capture_started",
                target_ip=ip,
                interface=interface,
                artifact=str(artifact),
            )
            return session

        await self._abort(session)

        if signal == StartSignal.PERMISSION_DENIED:
            raise CapturePermissionError(f"Permission denied capturing on {interface}: {detail}")
        if signal == StartSignal.DEVICE_MISSING:
            raise CaptureDeviceError(f"Capture interface {interface} not found: {detail}")
        raise CaptureProcessError(f"{self.tool} exited before listening: {detail or 'no output'}")

    async def _await_start_signal(
        self,
        process: asyncio.subprocess.Process,
    ) -> tuple[StartSignal, str]:
        """Read stderr until the tool reports its start state or exits."""
        assert process.stderr is not None
        seen: list[str] = []

        while True:
            raw = await process.stderr.readline()
            if not raw:
                await process.wait()
                return StartSignal.EXITED, " | ".join(seen)

            line = raw.decode(errors="replace").strip()
            if not line:
                continue
            seen.append(line)

            signal = classify_stderr(line)
            if signal is not None:
                return signal, line

    async def _drain_stderr(self, session: CaptureSession) -> None:
        """Keep the stderr pipe empty while capturing."""
        process = session.process
        if process is None or process.stderr is None:
            return
        while True:
            raw = await process.stderr.readline()
            if not raw:
                return
            line = raw.decode(errors="replace").strip()
            if line:
                logger.debug("capture_stderr", target_ip=session.target_ip, line=line)

    async def _terminate(self, session: CaptureSession) -> None:
        """SIGTERM, bounded wait, then SIGKILL."""
        process = session.process
        if process is None or process.returncode is not None:
            return

        try:
            process.terminate()
        except ProcessLookupError:
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.warning("capture_kill", target_ip=session.target_ip, pid=process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def _abort(self, session: CaptureSession) -> None:
        """Tear down a session that failed to start."""
        session.status = CaptureStatus.FAILED
        await self._terminate(session)
        self.discard(session)

    async def stop_capture(self, session: CaptureSession) -> None:
        """
        Stop a capture session.

        Idempotent: safe on sessions that are already stopped or failed.
        The artifact is kept so it can be read back; see discard().
        """
        await self._terminate(session)

        task = session.stderr_task
        if task is not None and not task.done():
            await asyncio.wait([task], timeout=1.0)
            if not task.done():
                task.cancel()

        if session.status != CaptureStatus.FAILED:
            if session.status != CaptureStatus.STOPPED:
                logger.info("capture_stopped", target_ip=session.target_ip)
            session.status = CaptureStatus.STOPPED

        self.registry.clear_session(session.target_ip, session)

    def discard(self, session: CaptureSession) -> None:
        """Remove a session's capture artifact from disk."""
        try:
            session.artifact.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("capture_artifact_remove_failed", artifact=str(session.artifact), error=str(e))

    @asynccontextmanager
    async def session(self, ip: str) -> AsyncIterator[CaptureSession]:
        """
        Capture for the duration of a block.

        The session is stopped and its artifact removed on exit,
        whether the block succeeds, fails or is cancelled.
        """
        capture = await self.start_capture(ip)
        try:
            yield capture
        finally:
            await self.stop_capture(capture)
            self.discard(capture)

    async def stop_target(self, ip: str) -> bool:
        """Terminate whatever capture is in flight for a target."""
        session = self.registry.get_session(ip)
        if session is None:
            return False
        await self.stop_capture(session)
        self.discard(session)
        return True

    def cleanup_artifacts(self) -> int:
        """Remove leftover capture artifacts from the temp directory."""
        if not self.temp_dir.exists():
            return 0

        removed = 0
        for path in self.temp_dir.glob(f"{ARTIFACT_PREFIX}*{ARTIFACT_SUFFIX}"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("capture_artifact_remove_failed", artifact=str(path), error=str(e))

        if removed:
            logger.info("capture_artifacts_cleaned", removed=removed, temp_dir=str(self.temp_dir))
        return removed

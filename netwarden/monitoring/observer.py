"""
NetWarden Traffic Observer

One observation: capture a target for a fixed duration, stop,
read the artifact back, and aggregate it into a TrafficProfile.
Used for both baseline establishment and scan cycles.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from netwarden.analysis.models import PacketRecord, TrafficProfile
from netwarden.analysis.parser import parse_capture
from netwarden.analysis.statistics import aggregate
from netwarden.capture.session import CaptureManager, CaptureStatus
from netwarden.errors import CaptureInterruptedError, TransientCaptureError

logger = structlog.get_logger(__name__)

ParseFunc = Callable[[Path], Awaitable[list[PacketRecord]]]


@dataclass
class Observation:
    """Profile produced by one observation."""

    profile: TrafficProfile
    degraded: bool = False
    """True when the capture failed transiently and the profile is empty."""


class TrafficObserver:
    """Runs capture, wait, stop, parse and aggregate for one target."""

    def __init__(
        self,
        capture_manager: CaptureManager,
        parse: ParseFunc | None = None,
    ):
        self.capture_manager = capture_manager
        self._parse = parse or self._default_parse

    async def _default_parse(self, artifact: Path) -> list[PacketRecord]:
        return await parse_capture(artifact, tool=self.capture_manager.tool)

    async def observe(self, ip: str, duration: float) -> Observation:
        """
        Observe a target for `duration` seconds.

        Configuration errors propagate. Transient capture errors are
        logged and produce an empty, degraded observation. So does a
        session stopped or replaced by someone else before the window
        ended: its artifact is gone or incomplete.
        """
        started = time.monotonic()

        try:
            async with self.capture_manager.session(ip) as session:
                await asyncio.sleep(duration)
                if session.status != CaptureStatus.CAPTURING:
                    raise CaptureInterruptedError(
                        f"Capture for {ip} was {session.status.value} before the window ended"
                    )
                await self.capture_manager.stop_capture(session)
                records = await self._parse(session.artifact)
        except TransientCaptureError as e:
            logger.warning(
                "observation_degraded",
                target_ip=ip,
                error_type=type(e).__name__,
                error=str(e),
            )
            return Observation(profile=TrafficProfile(), degraded=True)

        profile = aggregate(records)

        logger.info(
            "observation_complete",
            target_ip=ip,
            packets=profile.packet_count,
            packets_per_second=round(profile.packets_per_second, 3),
            elapsed=round(time.monotonic() - started, 2),
        )

        return Observation(profile=profile)

"""
NetWarden Host Survey

Active checks run against a target once its capture window has
closed: a short ping for reachability and an nmap sweep for open
TCP ports. Either tool may be missing or fail; that part of the
survey is then left empty instead of failing the scan cycle.
"""

import asyncio
import ipaddress
import re
from dataclasses import dataclass
from typing import Any

import structlog

from netwarden.config import settings

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

# 4 packets transmitted, 4 received, 0% packet loss, time 3004ms
PACKET_LOSS = re.compile(r"(\d+(?:\.\d+)?)% packet loss")

# rtt min/avg/max/mdev = 11.052/11.840/12.913/0.701 ms      (Linux)
# round-trip min/avg/max/stddev = 11.05/11.84/12.91/0.70 ms (BSD, macOS)
ROUND_TRIP = re.compile(r"(?:rtt|round-trip) min/avg/max/\w+ = [\d.]+/([\d.]+)/")

# 22/tcp  open  ssh
OPEN_PORT = re.compile(r"^(\d+)/tcp[ \t]+open(?:[ \t]+(\S+))?", re.MULTILINE)

# Services most often targeted when exposed
COMMONLY_ATTACKED_PORTS = frozenset({21, 22, 23, 25, 53, 80, 443, 445, 3389})


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class Reachability:
    """Ping outcome for a target."""

    packet_loss: float
    """Percentage of echo requests without a reply (0-100)."""

    response_time_ms: float
    """Average round-trip time; 0 when nothing answered."""

    @property
    def reachable(self) -> bool:
        return self.packet_loss < 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "packet_loss": self.packet_loss,
            "response_time_ms": self.response_time_ms,
            "reachable": self.reachable,
        }


@dataclass(frozen=True)
class OpenPort:
    """A TCP port found open on the target."""

    port: int
    service: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"port": self.port, "service": self.service}


@dataclass
class HostSurvey:
    """
    Reachability and exposed ports for one target.

    A field is None when its tool could not be run, which is not the
    same as an unreachable host or a host with no open ports.
    """

    reachability: Reachability | None = None
    open_ports: list[OpenPort] | None = None

    @property
    def commonly_attacked_ports(self) -> list[int]:
        """Open ports from the commonly attacked set, ascending."""
        if not self.open_ports:
            return []
        return sorted(p.port for p in self.open_ports if p.port in COMMONLY_ATTACKED_PORTS)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "reachability": self.reachability.to_dict() if self.reachability else None,
            "open_ports": (
                [p.to_dict() for p in self.open_ports] if self.open_ports is not None else None
            ),
        }


# =============================================================================
# Output Parsing
# =============================================================================


def parse_ping_output(text: str) -> Reachability:
    """
    Read packet loss and average RTT from ping's summary.

    Output without a loss summary counts as total loss.
    """
    loss = PACKET_LOSS.search(text)
    rtt = ROUND_TRIP.search(text)
    return Reachability(
        packet_loss=float(loss.group(1)) if loss else 100.0,
        response_time_ms=float(rtt.group(1)) if rtt else 0.0,
    )


def parse_port_scan_output(text: str) -> list[OpenPort]:
    """Collect open TCP ports from nmap's normal output."""
    return [
        OpenPort(port=int(match.group(1)), service=match.group(2))
        for match in OPEN_PORT.finditer(text)
    ]


# =============================================================================
# Surveyor
# =============================================================================


class HostSurveyor:
    """Runs ping and nmap against a target."""

    def __init__(
        self,
        ping_tool: str | None = None,
        port_scan_tool: str | None = None,
        ping_count: int | None = None,
        ping_timeout: int | None = None,
        port_range: str | None = None,
        port_scan_enabled: bool | None = None,
        timeout: float | None = None,
    ):
        self.ping_tool = ping_tool or settings.ping_tool
        self.port_scan_tool = port_scan_tool or settings.port_scan_tool
        self.ping_count = ping_count or settings.ping_count
        self.ping_timeout = ping_timeout or settings.ping_timeout_seconds
        self.port_range = port_range or settings.port_scan_range
        self.port_scan_enabled = (
            port_scan_enabled if port_scan_enabled is not None else settings.port_scan_enabled
        )
        self.timeout = timeout or settings.survey_timeout_seconds

    def ping_command(self, ip: str) -> list[str]:
        command = [self.ping_tool, "-c", str(self.ping_count), "-W", str(self.ping_timeout)]
        if ipaddress.ip_address(ip).version == 6:
            command.append("-6")
        return command + [ip]

    def port_scan_command(self, ip: str) -> list[str]:
        command = [self.port_scan_tool, "-p", self.port_range, "--open"]
        if ipaddress.ip_address(ip).version == 6:
            command.append("-6")
        return command + [ip]

    async def ping(self, ip: str) -> Reachability | None:
        """Ping a target. None when ping could not be run."""
        # ping exits non-zero on loss; the summary is still on stdout
        output = await self._run(self.ping_command(ip), ip)
        if output is None:
            return None
        return parse_ping_output(output)

    async def scan_ports(self, ip: str) -> list[OpenPort] | None:
        """List open TCP ports. None when disabled or nmap could not be run."""
        if not self.port_scan_enabled:
            return None
        output = await self._run(self.port_scan_command(ip), ip)
        if output is None:
            return None
        return parse_port_scan_output(output)

    async def survey(self, ip: str) -> HostSurvey:
        """Ping, then port-scan, a target."""
        survey = HostSurvey(
            reachability=await self.ping(ip),
            open_ports=await self.scan_ports(ip),
        )

        logger.info(
            "host_survey_complete",
            target_ip=ip,
            packet_loss=survey.reachability.packet_loss if survey.reachability else None,
            open_ports=len(survey.open_ports) if survey.open_ports is not None else None,
        )
        return survey

    async def _run(self, command: list[str], ip: str) -> str | None:
        """Run a survey tool to completion and return its stdout."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.warning("survey_tool_unavailable", tool=command[0], target_ip=ip, error=str(e))
            return None

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("survey_tool_timeout", tool=command[0], target_ip=ip, timeout=self.timeout)
            await _kill(proc)
            return None
        except BaseException:
            await _kill(proc)
            raise

        return stdout.decode(errors="replace")


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()

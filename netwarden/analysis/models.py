"""
NetWarden Data Models

Lightweight data structures for captured traffic.
Uses __slots__ for packet records since a capture can hold many of them.
"""

import ipaddress
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from netwarden.errors import InvalidTargetError


# =============================================================================
# Enums
# =============================================================================


class Protocol(str, Enum):
    """Protocol tag assigned to a parsed packet line."""

    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    ARP = "ARP"
    OTHER = "OTHER"


# A SYN without the ACK bit, as printed by tcpdump ("Flags [S]", "Flags [SEW]").
_SYN_FLAGS_PATTERN = re.compile(r"Flags \[(?=[^\].]*S)[^\].]*\]")


# =============================================================================
# Packet Record
# =============================================================================


@dataclass(slots=True)
class PacketRecord:
    """
    One packet as read back from a capture artifact.

    Records are ephemeral: produced per scan, aggregated, then dropped.
    """

    timestamp: float
    """Capture timestamp in seconds."""

    src: str
    """Source address."""

    dst: str
    """Destination address."""

    protocol: Protocol
    """Protocol tag."""

    length: int = 0
    """Byte length reported for the packet."""

    info: str = ""
    """Free-form descriptive tail of the packet line."""

    @property
    def is_connection_attempt(self) -> bool:
        """Check if this packet opens a TCP session (SYN without ACK)."""
        if self.protocol != Protocol.TCP:
            return False
        if _SYN_FLAGS_PATTERN.search(self.info):
            return True
        # Fallback lines carry no bracketed flags, only keywords
        upper = self.info.upper()
        return "SYN" in upper and "ACK" not in upper and "FLAGS [" not in upper


# =============================================================================
# Traffic Profile
# =============================================================================


@dataclass
class TrafficProfile:
    """
    Aggregated traffic metrics for one observation window.

    All numeric fields are non-negative. window_seconds is at least 1
    whenever packet_count is non-zero.
    """

    packets_per_second: float = 0.0
    bytes_per_second: float = 0.0

    unique_sources: set[str] = field(default_factory=set)
    """Distinct source addresses seen."""

    protocol_counts: dict[str, int] = field(default_factory=dict)
    """Packet count by protocol tag."""

    connection_attempts: int = 0
    """TCP packets signalling session initiation."""

    packet_count: int = 0
    total_bytes: int = 0
    window_seconds: float = 0.0

    @property
    def unique_source_count(self) -> int:
        """Number of distinct source addresses."""
        return len(self.unique_sources)

    @property
    def is_empty(self) -> bool:
        """True when no packets were observed."""
        return self.packet_count == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "packets_per_second": round(self.packets_per_second, 3),
            "bytes_per_second": round(self.bytes_per_second, 3),
            "unique_sources": sorted(self.unique_sources),
            "unique_source_count": self.unique_source_count,
            "protocol_counts": dict(self.protocol_counts),
            "connection_attempts": self.connection_attempts,
            "packet_count": self.packet_count,
            "total_bytes": self.total_bytes,
            "window_seconds": round(self.window_seconds, 3),
        }


# =============================================================================
# Baseline
# =============================================================================


@dataclass
class Baseline:
    """The cached 'normal' traffic profile for a target."""

    profile: TrafficProfile
    established_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "profile": self.profile.to_dict(),
            "established_at": self.established_at.isoformat(),
        }


# =============================================================================
# Helper Functions
# =============================================================================


def normalize_ip(ip: str) -> str:
    """
    Validate an IPv4/IPv6 address and return its canonical form.

    Raises:
        InvalidTargetError: If the string is not an IP address
    """
    try:
        return str(ipaddress.ip_address(str(ip).strip()))
    except ValueError:
        raise InvalidTargetError(str(ip)) from None

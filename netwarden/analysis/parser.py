"""
NetWarden Capture Parser

Turns tcpdump readback text into PacketRecord objects.
Parsing is table-driven: an ordered list of line matchers is tried
in sequence, followed by a heuristic fallback. Malformed lines are
skipped, never raised.
"""

import asyncio
import ipaddress
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from netwarden.analysis.models import PacketRecord, Protocol
from netwarden.config import settings

logger = structlog.get_logger(__name__)


# =============================================================================
# Constants
# =============================================================================

_TS = r"(?P<ts>\d+\.\d+|\d{1,2}:\d{2}:\d{2}(?:\.\d+)?)"
_ADDR = r"(?:\d{1,3}(?:\.\d{1,3}){3}|[0-9A-Fa-f]*:[0-9A-Fa-f:]+)"

# Captures on the catch-all interface prefix each packet with the
# receiving interface and a direction: "eth0  In  IP ...".
_LINK = r"(?:(?:\S+\s+)?(?:In|Out|B|M|P)\s+)?"

# 1700000000.123456 IP 10.0.0.5.51234 > 8.8.8.8.443: Flags [S], seq 1, length 0
# 1700000000.123456 IP6 fe80::1.546 > ff02::1:2.547: dhcp6 solicit
# 1700000000.123456 eth0  In  IP 10.0.0.5.51234 > 8.8.8.8.443: Flags [S], length 0
TRANSPORT_LINE = re.compile(
    rf"^{_TS}\s+{_LINK}IP6? (?P<src>{_ADDR})\.(?P<sport>\d+) > "
    rf"(?P<dst>{_ADDR})\.(?P<dport>\d+): (?P<info>.*)$"
)

# 1700000000.123456 IP 10.0.0.5 > 8.8.8.8: ICMP echo request, id 1, seq 1, length 64
NETWORK_LINE = re.compile(
    rf"^{_TS}\s+{_LINK}IP6? (?P<src>{_ADDR}) > (?P<dst>{_ADDR}): (?P<info>.*)$"
)

# 1700000000.123456 ARP, Request who-has 10.0.0.1 tell 10.0.0.5, length 28
ARP_LINE = re.compile(rf"^{_TS}\s+{_LINK}ARP, (?P<info>.*)$")
ARP_REQUEST = re.compile(r"who-has (?P<dst>[^\s,]+) (?:\([^)]*\) )?tell (?P<src>[^\s,]+)")
ARP_REPLY = re.compile(r"Reply (?P<src>[^\s,]+) is-at (?P<dst>[^\s,]+)")

FALLBACK_TIMESTAMP = re.compile(
    r"(?:^|\s)(\d{9,}\.\d+|\d{1,2}:\d{2}:\d{2}(?:\.\d+)?)(?=\s|$)"
)
LENGTH_FIELD = re.compile(r"\blength (\d+)")
TRAILING_SIZE = re.compile(r"\((\d+)\)\s*$")

_TOKEN_STRIP = ",:;()[]<>"


# =============================================================================
# Field Helpers
# =============================================================================


def parse_timestamp(value: str) -> float | None:
    """Convert an epoch or HH:MM:SS[.ffffff] timestamp to seconds."""
    try:
        if ":" in value:
            hours, minutes, seconds = value.split(":")
            return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
        return float(value)
    except ValueError:
        return None


def extract_length(text: str) -> int:
    """Pull the packet length out of a line tail (last 'length N' wins)."""
    lengths = LENGTH_FIELD.findall(text)
    if lengths:
        return int(lengths[-1])
    trailing = TRAILING_SIZE.search(text)
    if trailing:
        return int(trailing.group(1))
    return 0


def _as_address(token: str) -> str | None:
    """Return the address in a token such as '10.0.0.5.443:' or None."""
    token = token.strip(_TOKEN_STRIP)
    candidates = [token]
    if "." in token:
        # Drop a trailing '.port' suffix
        candidates.append(token.rsplit(".", 1)[0])
    for candidate in candidates:
        try:
            return str(ipaddress.ip_address(candidate))
        except ValueError:
            continue
    return None


def _guess_protocol(text: str) -> Protocol:
    """Best-effort protocol tag from keywords in a line."""
    upper = text.upper()
    if "FLAGS [" in upper or " TCP" in upper:
        return Protocol.TCP
    if "UDP" in upper:
        return Protocol.UDP
    if "ICMP" in upper:
        return Protocol.ICMP
    if "ARP" in upper:
        return Protocol.ARP
    return Protocol.OTHER


# =============================================================================
# Line Matchers
# =============================================================================


@dataclass(frozen=True)
class LineMatcher:
    """A named pattern plus the function that builds a record from its match."""

    name: str
    pattern: re.Pattern[str]
    build: Callable[[re.Match[str]], PacketRecord | None]

    def apply(self, line: str) -> PacketRecord | None:
        match = self.pattern.match(line)
        if match is None:
            return None
        return self.build(match)


def _build_transport(match: re.Match[str]) -> PacketRecord | None:
    timestamp = parse_timestamp(match["ts"])
    if timestamp is None:
        return None
    info = match["info"]
    lowered = info.lower()
    if info.startswith("Flags [") or lowered.startswith("tcp"):
        protocol = Protocol.TCP
    else:
        protocol = Protocol.UDP
    return PacketRecord(
        timestamp=timestamp,
        src=match["src"],
        dst=match["dst"],
        protocol=protocol,
        length=extract_length(info),
        info=info,
    )


def _build_network(match: re.Match[str]) -> PacketRecord | None:
    timestamp = parse_timestamp(match["ts"])
    if timestamp is None:
        return None
    info = match["info"]
    protocol = Protocol.ICMP if "ICMP" in info.upper() else _guess_protocol(info)
    return PacketRecord(
        timestamp=timestamp,
        src=match["src"],
        dst=match["dst"],
        protocol=protocol,
        length=extract_length(info),
        info=info,
    )


def _build_arp(match: re.Match[str]) -> PacketRecord | None:
    timestamp = parse_timestamp(match["ts"])
    if timestamp is None:
        return None
    info = match["info"]
    addresses = ARP_REQUEST.search(info) or ARP_REPLY.search(info)
    if addresses is None:
        return None
    return PacketRecord(
        timestamp=timestamp,
        src=addresses["src"],
        dst=addresses["dst"],
        protocol=Protocol.ARP,
        length=extract_length(info),
        info=info,
    )


LINE_MATCHERS: list[LineMatcher] = [
    LineMatcher("transport", TRANSPORT_LINE, _build_transport),
    LineMatcher("network", NETWORK_LINE, _build_network),
    LineMatcher("arp", ARP_LINE, _build_arp),
]


def parse_fallback(line: str) -> PacketRecord | None:
    """
    Heuristic last resort: any timestamp plus the first two addresses.

    Used when no structured pattern recognises the line.
    """
    ts_match = FALLBACK_TIMESTAMP.search(line)
    if ts_match is None:
        return None
    timestamp = parse_timestamp(ts_match.group(1))
    if timestamp is None:
        return None

    addresses: list[str] = []
    for token in line[ts_match.end():].split():
        address = _as_address(token)
        if address:
            addresses.append(address)
            if len(addresses) == 2:
                break

    if len(addresses) < 2:
        return None

    return PacketRecord(
        timestamp=timestamp,
        src=addresses[0],
        dst=addresses[1],
        protocol=_guess_protocol(line),
        length=extract_length(line),
        info=line[ts_match.end():].strip(),
    )


# =============================================================================
# Text Parsing
# =============================================================================


def parse_line(line: str) -> PacketRecord | None:
    """Parse one readback line, or return None if nothing recognisable."""
    line = line.strip()
    if not line:
        return None
    for matcher in LINE_MATCHERS:
        record = matcher.apply(line)
        if record is not None:
            return record
    return parse_fallback(line)


def parse_lines(
    lines: Iterable[str],
    max_records: int | None = None,
) -> list[PacketRecord]:
    """
    Parse readback lines into records, skipping anything unparseable.

    Args:
        lines: Readback text lines
        max_records: Optional ceiling on the number of records returned

    Returns:
        Parsed records in input order
    """
    records: list[PacketRecord] = []
    skipped = 0

    for line in lines:
        record = parse_line(line)
        if record is None:
            if line.strip():
                skipped += 1
            continue
        records.append(record)
        if max_records is not None and len(records) >= max_records:
            break

    if skipped:
        logger.debug("capture_lines_skipped", skipped=skipped, parsed=len(records))

    return records


# =============================================================================
# Capture Readback
# =============================================================================


async def _read_back(
    tool: str,
    artifact: Path,
    record_cap: int,
    max_output_bytes: int,
) -> tuple[str, bool] | None:
    """
    Run the capture tool in readback mode.

    Returns:
        (text, overflowed) or None when the tool could not be run
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            tool, "-nn", "-tt", "-r", str(artifact), "-c", str(record_cap),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("capture_readback_unavailable", tool=tool, error=str(e))
        return None

    assert proc.stdout is not None
    chunks: list[bytes] = []
    size = 0
    overflowed = False

    while True:
        chunk = await proc.stdout.read(64 * 1024)
        if not chunk:
            break
        if size + len(chunk) > max_output_bytes:
            chunks.append(chunk[: max_output_bytes - size])
            overflowed = True
            break
        size += len(chunk)
        chunks.append(chunk)

    if overflowed:
        try:
            proc.kill()
        except ProcessLookupError:
            pass

    _, stderr = await proc.communicate()

    if proc.returncode and not overflowed:
        # Truncated artifacts still yield the packets read so far
        logger.warning(
            "capture_readback_error",
            artifact=str(artifact),
            returncode=proc.returncode,
            stderr=stderr.decode(errors="replace").strip()[:500],
        )

    return b"".join(chunks).decode(errors="replace"), overflowed


async def parse_capture(
    artifact: Path,
    max_records: int | None = None,
    fallback_records: int | None = None,
    max_output_bytes: int | None = None,
    tool: str | None = None,
) -> list[PacketRecord]:
    """
    Read a capture artifact back and parse it into records.

    A missing or empty artifact yields an empty list: an idle host is
    a normal outcome. If the readback output exceeds the size ceiling
    the tool is re-run with a smaller record cap; if that still
    overflows, the truncated output is parsed as a partial result.

    Args:
        artifact: Path to the capture file
        max_records: Record cap for the first readback
        fallback_records: Reduced cap used after an overflow
        max_output_bytes: Readback output ceiling
        tool: Capture binary (defaults to settings)

    Returns:
        Parsed packet records (never raises for bad input)
    """
    max_records = max_records or settings.parse_max_records
    fallback_records = fallback_records or settings.parse_fallback_records
    max_output_bytes = max_output_bytes or settings.readback_max_output_bytes
    tool = tool or settings.capture_tool

    try:
        if not artifact.exists() or artifact.stat().st_size == 0:
            logger.info("capture_artifact_empty", artifact=str(artifact))
            return []
    except OSError as e:
        logger.warning("capture_artifact_unreadable", artifact=str(artifact), error=str(e))
        return []

    logger.info("capture_parse_starting", artifact=str(artifact))

    caps = [max_records]
    if fallback_records < max_records:
        caps.append(fallback_records)

    text = ""
    cap = max_records
    for cap in caps:
        outcome = await _read_back(tool, artifact, cap, max_output_bytes)
        if outcome is None:
            return []
        text, overflowed = outcome
        if not overflowed:
            break
        logger.warning(
            "capture_readback_overflow",
            artifact=str(artifact),
            record_cap=cap,
            max_output_bytes=max_output_bytes,
        )
    else:
        # Still overflowing: the last line is probably cut in half
        text = text.rsplit("\n", 1)[0]

    records = parse_lines(text.splitlines(), max_records=cap)

    logger.info("capture_parse_complete", artifact=str(artifact), packets=len(records))

    return records

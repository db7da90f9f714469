"""
NetWarden Traffic Statistics

Aggregates parsed packet records into a TrafficProfile.
"""

from collections import Counter
from collections.abc import Sequence

from netwarden.analysis.models import PacketRecord, TrafficProfile

# Rates are never computed over less than this many seconds.
MIN_WINDOW_SECONDS = 1.0


def compute_window(records: Sequence[PacketRecord]) -> float:
    """
    Effective observation window for a set of records.

    Zero records have no window; otherwise the span between the
    earliest and latest timestamps, floored at one second.
    """
    if not records:
        return 0.0
    if len(records) == 1:
        return MIN_WINDOW_SECONDS
    timestamps = [r.timestamp for r in records]
    return max(MIN_WINDOW_SECONDS, max(timestamps) - min(timestamps))


def aggregate(records: Sequence[PacketRecord]) -> TrafficProfile:
    """
    Aggregate packet records into a traffic profile.

    Pure function of its input. A single record is treated as one
    packet over a one-second window.

    Args:
        records: Parsed packet records

    Returns:
        TrafficProfile with non-negative rates and counts
    """
    if not records:
        return TrafficProfile()

    window = compute_window(records)
    total_bytes = sum(max(0, r.length) for r in records)
    protocol_counts: Counter[str] = Counter(r.protocol.value for r in records)

    return TrafficProfile(
        packets_per_second=len(records) / window,
        bytes_per_second=total_bytes / window,
        unique_sources={r.src for r in records},
        protocol_counts=dict(protocol_counts),
        connection_attempts=sum(1 for r in records if r.is_connection_attempt),
        packet_count=len(records),
        total_bytes=total_bytes,
        window_seconds=window,
    )

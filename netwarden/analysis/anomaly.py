"""
NetWarden Baseline Anomaly Detection

Compares a freshly observed traffic profile against the cached
baseline for the same target.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from netwarden.analysis.models import TrafficProfile
from netwarden.analysis.survey import HostSurvey
from netwarden.config import settings

logger = structlog.get_logger(__name__)

DEFAULT_ANOMALY_FACTOR = 2.0


@dataclass
class AnomalyFinding:
    """
    Packaged result of a scan cycle that deviated from baseline.

    Built by the detector, consumed once by the finding emitter.
    """

    target_ip: str
    """Monitored address."""

    timestamp: datetime
    """When the scan completed."""

    profile: TrafficProfile
    """Observed traffic for this cycle."""

    baseline: TrafficProfile
    """Baseline the profile was compared against."""

    anomalies: list[str] = field(default_factory=list)
    """Human-readable anomaly descriptions, in detection order."""

    survey: HostSurvey | None = None
    """Reachability and open ports checked after the capture window."""

    @property
    def suspicious(self) -> bool:
        """A finding is suspicious when any anomaly was detected."""
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
            "survey": self.survey.to_dict() if self.survey else None,
        }


def detect_anomalies(
    current: TrafficProfile,
    baseline: TrafficProfile,
    factor: float = DEFAULT_ANOMALY_FACTOR,
) -> list[str]:
    """
    Compare a profile against its baseline.

    Rules, in order:
    1. Quiet baseline and quiet current traffic: nothing to report.
    2. Quiet baseline, active current traffic: a single "new traffic"
       anomaly. Ratios against a zero baseline are meaningless.
    3. Otherwise each metric is tested against baseline x factor.
       Count metrics use a floor of 1 so a near-zero baseline does not
       make any single observation anomalous.

    Args:
        current: Profile observed in this cycle
        baseline: Cached baseline profile
        factor: Multiplicative threshold

    Returns:
        Ordered list of anomaly descriptions (empty when clean)
    """
    if baseline.packets_per_second == 0:
        if current.packets_per_second == 0:
            return []
        return [
            f"New traffic detected: {current.packets_per_second:.2f} packets/sec "
            f"on a target with no baseline traffic"
        ]

    anomalies: list[str] = []

    threshold = baseline.packets_per_second * factor
    if current.packets_per_second > threshold:
        anomalies.append(
            f"High packet rate: {current.packets_per_second:.2f} packets/sec "
            f"(baseline: {baseline.packets_per_second:.2f} packets/sec)"
        )

    threshold = baseline.bytes_per_second * factor
    if current.bytes_per_second > threshold:
        anomalies.append(
            f"High byte rate: {current.bytes_per_second:.2f} bytes/sec "
            f"(baseline: {baseline.bytes_per_second:.2f} bytes/sec)"
        )

    threshold = max(baseline.unique_source_count * factor, 1)
    if current.unique_source_count > threshold:
        anomalies.append(
            f"Unusual number of unique sources: {current.unique_source_count} "
            f"(baseline: {baseline.unique_source_count})"
        )

    threshold = max(baseline.connection_attempts * factor, 1)
    if current.connection_attempts > threshold:
        anomalies.append(
            f"High connection attempt count: {current.connection_attempts} "
            f"(baseline: {baseline.connection_attempts})"
        )

    return anomalies


def detect_exposure(survey: HostSurvey | None, max_open_ports: int = 5) -> list[str]:
    """
    Flag a host exposing many services, some of them commonly attacked.

    Independent of the traffic comparison; a survey without a port
    sweep never yields an anomaly.
    """
    if survey is None or survey.open_ports is None:
        return []

    attacked = survey.commonly_attacked_ports
    if len(survey.open_ports) > max_open_ports and attacked:
        return [
            f"Exposed services: {len(survey.open_ports)} open TCP ports "
            f"including commonly attacked ports {', '.join(map(str, attacked))}"
        ]
    return []


class AnomalyDetector:
    """Baseline comparison with a configured anomaly factor."""

    def __init__(self, factor: float | None = None, max_open_ports: int | None = None):
        self.factor = factor if factor is not None else settings.anomaly_factor
        self.max_open_ports = (
            max_open_ports if max_open_ports is not None else settings.survey_max_open_ports
        )

    def evaluate(
        self,
        target_ip: str,
        current: TrafficProfile,
        baseline: TrafficProfile,
        survey: HostSurvey | None = None,
    ) -> AnomalyFinding:
        """Compare profiles, check exposure, and package the result for the target."""
        anomalies = detect_anomalies(current, baseline, self.factor)
        anomalies += detect_exposure(survey, self.max_open_ports)

        if anomalies:
            logger.info(
                "anomalies_detected",
                target_ip=target_ip,
                count=len(anomalies),
                packets_per_second=round(current.packets_per_second, 3),
                baseline_packets_per_second=round(baseline.packets_per_second, 3),
            )

        return AnomalyFinding(
            target_ip=target_ip,
            timestamp=datetime.now(),
            profile=current,
            baseline=baseline,
            anomalies=anomalies,
            survey=survey,
        )

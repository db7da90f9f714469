"""
NetWarden Analysis Module

Packet parsing, traffic statistics and baseline anomaly detection.
"""

from netwarden.analysis.anomaly import (
    AnomalyDetector,
    AnomalyFinding,
    detect_anomalies,
    detect_exposure,
)
from netwarden.analysis.models import (
    Baseline,
    PacketRecord,
    Protocol,
    TrafficProfile,
    normalize_ip,
)
from netwarden.analysis.parser import parse_capture, parse_line, parse_lines
from netwarden.analysis.statistics import aggregate
from netwarden.analysis.survey import HostSurvey, HostSurveyor, OpenPort, Reachability

__all__ = [
    "AnomalyDetector",
    "AnomalyFinding",
    "detect_anomalies",
    "detect_exposure",
    "Baseline",
    "PacketRecord",
    "Protocol",
    "TrafficProfile",
    "normalize_ip",
    "parse_capture",
    "parse_line",
    "parse_lines",
    "aggregate",
    "HostSurvey",
    "HostSurveyor",
    "OpenPort",
    "Reachability",
]

"""
NetWarden Monitoring Module

Target registry, finding emission and the recurring scan scheduler.
The scheduler and service live in their own modules since they depend
on the capture layer.
"""

from netwarden.monitoring.emitter import FindingEmitter
from netwarden.monitoring.registry import MonitoringTarget, TargetRegistry, TargetState
from netwarden.monitoring.store import FindingStore, JsonlFindingStore

__all__ = [
    "FindingEmitter",
    "FindingStore",
    "JsonlFindingStore",
    "MonitoringTarget",
    "TargetRegistry",
    "TargetState",
]

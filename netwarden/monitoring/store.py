"""
NetWarden Finding Store

Persistence seam for emitted findings. The default store appends one
JSON object per finding to a JSON-lines file.
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import structlog

from netwarden.ai.classifier import Classification
from netwarden.analysis.anomaly import AnomalyFinding
from netwarden.config import settings

logger = structlog.get_logger(__name__)


class FindingStore(Protocol):
    """Anything that can persist a classified finding."""

    async def save(
        self,
        finding: AnomalyFinding,
        classification: Classification,
        timestamp: datetime,
    ) -> None: ...


def finding_record(
    finding: AnomalyFinding,
    classification: Classification,
    timestamp: datetime,
) -> dict[str, Any]:
    """Flatten a classified finding into one storable record."""
    return {
        "target_ip": finding.target_ip,
        "timestamp": timestamp.isoformat(),
        "severity": classification.severity.value,
        "category": classification.category.value,
        "narrative": classification.narrative,
        "recommendation": classification.recommendation,
        "finding": finding.to_dict(),
    }


class JsonlFindingStore:
    """Appends findings to a JSON-lines file."""

    def __init__(self, path: Path | None = None):
        self.path = path or settings.findings_path
        self._lock = asyncio.Lock()

    async def save(
        self,
        finding: AnomalyFinding,
        classification: Classification,
        timestamp: datetime,
    ) -> None:
        line = json.dumps(finding_record(finding, classification, timestamp))
        async with self._lock:
            await asyncio.to_thread(self._append, line)
        logger.debug("finding_saved", target_ip=finding.target_ip, path=str(self.path))

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def load(self) -> list[dict[str, Any]]:
        """Read every stored record back, oldest first."""
        if not self.path.exists():
            return []
        with open(self.path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

"""
NetWarden Finding Emitter

Hands a suspicious finding to the classifier and the store.
Emission is best-effort: a failing classifier is replaced by the
fallback classification, and a failing store is logged.
"""

from datetime import datetime

import structlog

from netwarden.ai.classifier import FALLBACK_CLASSIFICATION, Classification, Classifier
from netwarden.analysis.anomaly import AnomalyFinding
from netwarden.monitoring.store import FindingStore

logger = structlog.get_logger(__name__)


class FindingEmitter:
    """Classifies and persists findings."""

    def __init__(self, classifier: Classifier, store: FindingStore):
        self.classifier = classifier
        self.store = store

    async def emit(self, finding: AnomalyFinding) -> Classification:
        """
        Classify and persist one finding.

        Never raises for collaborator failures.

        Returns:
            The classification that was stored
        """
        try:
            classification = await self.classifier.classify(finding)
        except Exception as e:
            logger.warning(
                "finding_classification_failed",
                target_ip=finding.target_ip,
                error_type=type(e).__name__,
                error=str(e),
            )
            classification = FALLBACK_CLASSIFICATION

        timestamp = datetime.now()

        try:
            await self.store.save(finding, classification, timestamp)
        except Exception as e:
            logger.error(
                "finding_persist_failed",
                target_ip=finding.target_ip,
                error_type=type(e).__name__,
                error=str(e),
            )

        logger.info(
            "finding_emitted",
            target_ip=finding.target_ip,
            severity=classification.severity.value,
            category=classification.category.value,
            anomalies=len(finding.anomalies),
        )

        return classification

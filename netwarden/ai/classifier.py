"""
NetWarden Finding Classifier

Turns an AnomalyFinding into a severity, threat category and
narrative. The core only depends on the Classifier protocol; the
LLM-backed implementation is the default.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import structlog

from netwarden.ai.openrouter import LLMError, OpenRouterClient, get_openrouter_client
from netwarden.ai.prompts import PromptTemplates
from netwarden.analysis.anomaly import AnomalyFinding
from netwarden.errors import ClassificationError

logger = structlog.get_logger(__name__)


# =============================================================================
# Enums
# =============================================================================


class Severity(str, Enum):
    """Severity levels for classified findings."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ThreatCategory(str, Enum):
    """Threat categories a finding can be classified as."""

    DDOS = "ddos"
    BRUTE_FORCE = "brute_force"
    PORT_SCAN = "port_scan"
    NETWORK_SCAN = "network_scan"
    BACKDOOR = "backdoor"
    MALWARE = "malware"
    OTHER = "other"


# =============================================================================
# Classification
# =============================================================================


@dataclass(frozen=True)
class Classification:
    """Classifier verdict for one finding."""

    severity: Severity
    category: ThreatCategory
    narrative: str
    recommendation: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "narrative": self.narrative,
            "recommendation": self.recommendation,
        }


FALLBACK_CLASSIFICATION = Classification(
    severity=Severity.MEDIUM,
    category=ThreatCategory.OTHER,
    narrative="Automated analysis failed. Manual review required.",
    recommendation=(
        "Please review this finding manually as the automated analysis "
        "system encountered an error."
    ),
)


class Classifier(Protocol):
    """Anything that can classify a finding. May raise."""

    async def classify(self, finding: AnomalyFinding) -> Classification: ...


# =============================================================================
# Response Parsing
# =============================================================================

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_severity(value: Any) -> Severity:
    """Map a model-supplied severity to a Severity, defaulting to medium."""
    try:
        return Severity(str(value).strip().lower())
    except ValueError:
        return Severity.MEDIUM


def parse_category(value: Any) -> ThreatCategory:
    """Map a model-supplied type to a ThreatCategory, defaulting to other."""
    try:
        return ThreatCategory(str(value).strip().lower())
    except ValueError:
        return ThreatCategory.OTHER


def parse_classification(content: str) -> Classification:
    """
    Parse the model's JSON reply.

    Raises:
        ClassificationError: If the reply is not a JSON object
    """
    text = _CODE_FENCE.sub("", content.strip())

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"Classifier returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ClassificationError("Classifier returned JSON that is not an object")

    return Classification(
        severity=parse_severity(data.get("severity")),
        category=parse_category(data.get("type")),
        narrative=str(data.get("analysis") or "Analysis unavailable."),
        recommendation=str(data.get("recommendation") or "No specific recommendations."),
    )


# =============================================================================
# LLM Classifier
# =============================================================================


class LLMClassifier:
    """Classifies findings with an OpenRouter chat model."""

    def __init__(self, client: OpenRouterClient | None = None):
        self.client = client or get_openrouter_client()

    async def classify(self, finding: AnomalyFinding) -> Classification:
        """
        Classify one finding.

        Raises:
            ClassificationError: If the model call fails or its reply is unusable
        """
        prompt = PromptTemplates.classification_prompt(
            json.dumps(finding.to_dict(), indent=2),
            finding.target_ip,
        )

        response = await self.client.classify(prompt, PromptTemplates.SYSTEM_CLASSIFIER)

        if isinstance(response, LLMError):
            raise ClassificationError(f"{response.error_type}: {response.message}")

        classification = parse_classification(response.content)

        logger.info(
            "finding_classified",
            target_ip=finding.target_ip,
            severity=classification.severity.value,
            category=classification.category.value,
        )

        return classification

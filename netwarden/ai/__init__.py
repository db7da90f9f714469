"""
NetWarden AI Module

Finding classification using the OpenRouter LLM API.
"""

from netwarden.ai.classifier import (
    FALLBACK_CLASSIFICATION,
    Classification,
    LLMClassifier,
    Severity,
    ThreatCategory,
)
from netwarden.ai.openrouter import OpenRouterClient
from netwarden.ai.prompts import PromptTemplates

__all__ = [
    "FALLBACK_CLASSIFICATION",
    "Classification",
    "LLMClassifier",
    "Severity",
    "ThreatCategory",
    "OpenRouterClient",
    "PromptTemplates",
]

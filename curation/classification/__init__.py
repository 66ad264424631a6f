"""
Classification module: decides security relevance, threat category and
confidence from raw conversation content.
"""

from .classifier import (
    SecurityClassifier,
    assign_category,
    compute_confidence,
    conversation_text,
    match_keywords,
)
from .schema import ClassificationRecord, ClassificationResult, ThreatCategory
from .vocabulary import CATEGORY_PATTERNS, SECURITY_KEYWORDS

__all__ = [
    # Schema
    "ClassificationRecord",
    "ClassificationResult",
    "ThreatCategory",

    # Vocabulary
    "CATEGORY_PATTERNS",
    "SECURITY_KEYWORDS",

    # Classifier
    "SecurityClassifier",
    "assign_category",
    "compute_confidence",
    "conversation_text",
    "match_keywords",
]

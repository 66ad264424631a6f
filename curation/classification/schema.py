"""
Schema definitions for conversation classification.

Classification outputs are deterministic and explainable: every decision
carries the vocabulary terms that produced it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ThreatCategory(str, Enum):
    """Threat categories a security conversation can be assigned to."""

    MALWARE = "malware"
    PHISHING = "phishing"
    NETWORK_INTRUSION = "network_intrusion"
    VULNERABILITY = "vulnerability"
    DATA_BREACH = "data_breach"
    INCIDENT_RESPONSE = "incident_response"


class ClassificationResult(BaseModel):
    """
    Pure classifier output for a single conversation.

    Fields:
    - is_security_related: relevance decision
    - confidence: keyword density score in [0.0, 1.0]
    - threat_category: strict-majority category, None on ties or no matches
    - matched_keywords: distinct vocabulary terms found (sorted)
    - keyword_match_count: len(matched_keywords)
    - message_count: number of messages considered
    """

    is_security_related: bool = False
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    threat_category: Optional[ThreatCategory] = None
    matched_keywords: List[str] = Field(default_factory=list)
    keyword_match_count: int = Field(0, ge=0)
    message_count: int = Field(0, ge=0)


class ClassificationRecord(ClassificationResult):
    """
    Persisted classification for a conversation.

    processed_for_training flips false -> true exactly once, when a job claims
    the record; claimed_job_id names that job. Stores must never write either
    field back.
    """

    conversation_id: str = Field(min_length=1)
    processed_for_training: bool = False
    claimed_job_id: Optional[str] = None
    classified_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_result(cls, conversation_id: str, result: ClassificationResult) -> "ClassificationRecord":
        return cls(conversation_id=conversation_id, **result.model_dump())

    def qualifies(self, min_confidence: float) -> bool:
        """True if the record may still be claimed into a training batch."""

        return (
            self.is_security_related
            and not self.processed_for_training
            and self.confidence >= min_confidence
        )

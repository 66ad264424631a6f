"""
Keyword classifier for security-relevant conversations.

Pure and deterministic: identical conversations always produce identical
results, which keeps at-least-once reclassification safe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from curation.conversation.schema import Conversation
from curation.core.config import ClassifierConfig, config

from .schema import ClassificationRecord, ClassificationResult, ThreatCategory
from .vocabulary import CATEGORY_PATTERNS, SECURITY_KEYWORDS


def conversation_text(conversation: Conversation) -> str:
    """
    Lower-cased concatenation of all message contents, in sequence order.
    """

    return " ".join(m.content for m in conversation.ordered_messages()).lower()


def match_keywords(text: str, vocabulary: Iterable[str]) -> List[str]:
    """
    Return the sorted distinct vocabulary terms contained in text.

    Substring containment, not token matching: "patch" also matches "dispatch".
    """

    return sorted({term for term in vocabulary if term in text})


def assign_category(
    text: str, category_patterns: Mapping[ThreatCategory, Sequence[str]]
) -> Optional[ThreatCategory]:
    """
    Pick the category with the strictly highest count of distinct patterns.

    Ties for the highest count, or no matches at all, yield None.
    """

    counts: Dict[ThreatCategory, int] = {}
    for category, patterns in category_patterns.items():
        counts[category] = len({p for p in patterns if p in text})

    best: Optional[ThreatCategory] = None
    best_count = 0
    tied = False
    for category, count in counts.items():
        if count > best_count:
            best, best_count, tied = category, count, False
        elif count == best_count and count > 0:
            tied = True

    if best is None or tied:
        return None
    return best


def compute_confidence(keyword_match_count: int, message_count: int) -> float:
    """
    Keyword density score: min(matches / messages * 2, 1.0).
    """

    if message_count <= 0:
        return 0.0
    return min(keyword_match_count / message_count * 2, 1.0)


@dataclass
class SecurityClassifier:
    """
    Decides whether a conversation is security related.

    Notes:
    - Conversations shorter than min_messages are "insufficient" and score 0.
    - Relevance needs both enough distinct keywords and confidence strictly
      above the relevance threshold.
    """

    config: ClassifierConfig = field(default_factory=lambda: config.classifier)
    vocabulary: Sequence[str] = SECURITY_KEYWORDS
    category_patterns: Mapping[ThreatCategory, Sequence[str]] = field(
        default_factory=lambda: dict(CATEGORY_PATTERNS)
    )

    def classify(self, conversation: Conversation) -> ClassificationResult:
        message_count = len(conversation.messages)
        if message_count < self.config.min_messages:
            return ClassificationResult(message_count=message_count)

        text = conversation_text(conversation)
        keywords = match_keywords(text, self.vocabulary)
        keyword_count = len(keywords)
        confidence = compute_confidence(keyword_count, message_count)

        is_relevant = (
            keyword_count >= self.config.min_keyword_matches
            and confidence > self.config.relevance_threshold
        )

        return ClassificationResult(
            is_security_related=is_relevant,
            confidence=confidence,
            threat_category=assign_category(text, self.category_patterns),
            matched_keywords=keywords,
            keyword_match_count=keyword_count,
            message_count=message_count,
        )

    def classify_record(self, conversation: Conversation) -> ClassificationRecord:
        result = self.classify(conversation)
        return ClassificationRecord.from_result(conversation.conversation_id, result)

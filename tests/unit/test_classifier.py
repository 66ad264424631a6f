"""
Unit tests for the keyword security classifier.
"""

import pytest

from curation.classification import (
    SecurityClassifier,
    ThreatCategory,
    assign_category,
    compute_confidence,
    match_keywords,
)
from curation.classification.vocabulary import CATEGORY_PATTERNS
from curation.conversation.schema import Conversation, Message, MessageRole
from curation.core.config import ClassifierConfig


def test_scenario_a_malware_conversation(classifier, scenario_a_conversation):
    result = classifier.classify(scenario_a_conversation)

    assert {"trojan", "hash"}.issubset(set(result.matched_keywords))
    assert result.confidence == 1.0
    assert result.is_security_related is True
    assert result.threat_category == ThreatCategory.MALWARE
    assert result.keyword_match_count == len(result.matched_keywords)
    assert result.message_count == 3


def test_scenario_b_generic_conversation(classifier, generic_conversation):
    result = classifier.classify(generic_conversation)

    assert result.matched_keywords == []
    assert result.confidence == 0.0
    assert result.is_security_related is False
    assert result.threat_category is None


@pytest.mark.parametrize("count", [0, 1, 2])
def test_short_conversations_are_insufficient(classifier, count):
    texts = ["trojan malware ransomware exploit phishing"] * count
    result = classifier.classify(Conversation.from_texts("short", texts))

    assert result.is_security_related is False
    assert result.confidence == 0.0
    assert result.matched_keywords == []
    assert result.threat_category is None
    assert result.message_count == count


def test_classification_is_idempotent(classifier, scenario_a_conversation):
    first = classifier.classify(scenario_a_conversation)
    second = classifier.classify(scenario_a_conversation)

    assert first == second


def test_matching_is_case_insensitive_substring(classifier):
    conversation = Conversation.from_texts(
        "case", ["RANSOMWARE hit us", "We saw Exfiltration of files", "Please advise"]
    )
    result = classifier.classify(conversation)

    assert "ransomware" in result.matched_keywords
    assert "exfiltrat" in result.matched_keywords


def test_message_order_uses_sequence():
    conversation = Conversation(
        conversation_id="ordered",
        messages=[
            Message(role=MessageRole.ASSISTANT, content="second", sequence=1),
            Message(role=MessageRole.USER, content="first", sequence=0),
        ],
    )
    assert [m.content for m in conversation.ordered_messages()] == ["first", "second"]


def test_confidence_formula_and_cap():
    assert compute_confidence(0, 3) == 0.0
    assert compute_confidence(1, 4) == 0.5
    assert compute_confidence(3, 3) == 1.0
    assert compute_confidence(10, 3) == 1.0


def test_confidence_non_decreasing_in_keyword_count():
    scores = [compute_confidence(k, 6) for k in range(0, 10)]
    assert scores == sorted(scores)


def test_single_keyword_is_not_relevant_even_with_high_confidence():
    classifier = SecurityClassifier(config=ClassifierConfig(min_messages=3))
    conversation = Conversation.from_texts("one", ["phishing", "ok", "fine"])
    result = classifier.classify(conversation)

    assert result.keyword_match_count == 1
    assert result.confidence > 0.3
    assert result.is_security_related is False


def test_relevance_requires_confidence_strictly_above_threshold():
    # 2 keywords over 12 messages -> confidence 0.333...; threshold 1/3 exactly is not exceeded
    texts = ["trojan", "firewall"] + ["ok thanks"] * 10
    conversation = Conversation.from_texts("density", texts)

    strict = SecurityClassifier(config=ClassifierConfig(relevance_threshold=2 / 12 * 2))
    assert strict.classify(conversation).is_security_related is False

    lenient = SecurityClassifier(config=ClassifierConfig(relevance_threshold=0.3))
    assert lenient.classify(conversation).is_security_related is True


def test_category_tie_yields_none():
    text = "trojan and phishing"
    assert assign_category(text, CATEGORY_PATTERNS) is None


def test_category_strict_maximum_wins():
    text = "trojan ransomware phishing"
    assert assign_category(text, CATEGORY_PATTERNS) == ThreatCategory.MALWARE


def test_category_none_without_matches():
    assert assign_category("nothing to see here", CATEGORY_PATTERNS) is None


def test_match_keywords_sorted_and_distinct():
    assert match_keywords("worm worm virus", ["worm", "virus", "trojan"]) == ["virus", "worm"]


def test_classify_record_carries_conversation_id(classifier, scenario_a_conversation):
    record = classifier.classify_record(scenario_a_conversation)

    assert record.conversation_id == "scenario-a"
    assert record.processed_for_training is False
    assert record.claimed_job_id is None

"""
Unit tests for training example formatting.
"""

from curation.classification.schema import ClassificationResult, ThreatCategory
from curation.conversation.schema import Conversation, Message, MessageRole
from curation.examples import SYSTEM_PROMPT_TEMPLATE, ExampleFormatter, build_system_prompt
from curation.examples.prompt import CATEGORY_FOCUS, GENERAL_FOCUS


def _result(category=ThreatCategory.MALWARE, confidence=0.9):
    return ClassificationResult(
        is_security_related=True,
        confidence=confidence,
        threat_category=category,
        matched_keywords=["hash", "trojan"],
        keyword_match_count=2,
        message_count=4,
    )


def test_format_joins_turns_by_role(scenario_a_conversation):
    example = ExampleFormatter().format(scenario_a_conversation, _result())

    assert example.user_message == "I found a trojan in the log\n\nRecommend quarantine"
    assert example.assistant_response == "It was detected via hash abc123"
    assert example.conversation_id == "scenario-a"
    assert example.quality_score == 0.9
    assert example.threat_category == ThreatCategory.MALWARE
    assert example.job_id is None


def test_system_prompt_depends_only_on_category():
    first = Conversation.from_texts("a", ["trojan found today", "remove it now please"])
    second = Conversation.from_texts("b", ["a completely different text", "with other words"])
    formatter = ExampleFormatter()

    assert (
        formatter.format(first, _result()).system_prompt
        == formatter.format(second, _result()).system_prompt
        == SYSTEM_PROMPT_TEMPLATE.format(focus=CATEGORY_FOCUS[ThreatCategory.MALWARE])
    )


def test_system_prompt_without_category_uses_general_focus():
    assert GENERAL_FOCUS in build_system_prompt(None)


def test_missing_assistant_turn_yields_empty_text():
    conversation = Conversation(
        conversation_id="lonely",
        messages=[Message(role=MessageRole.USER, content="is this a phishing email?", sequence=0)],
    )
    example = ExampleFormatter().format(conversation, _result(ThreatCategory.PHISHING))

    assert example.assistant_response == ""


def test_to_training_record_is_chat_format(scenario_a_conversation):
    record = ExampleFormatter().format(scenario_a_conversation, _result()).to_training_record()

    assert [m["role"] for m in record["messages"]] == ["system", "user", "assistant"]


def test_attach_to_sets_job_id(scenario_a_conversation):
    example = ExampleFormatter().format(scenario_a_conversation, _result())
    attached = example.attach_to("job-1")

    assert attached.job_id == "job-1"
    assert example.job_id is None
    assert attached.example_id == example.example_id


def test_format_exchanges_pairs_user_and_assistant_turns():
    conversation = Conversation.from_texts(
        "multi",
        [
            "We saw a port scan on the edge firewall",
            "Check the firewall logs for the source range",
            "The source was a known botnet",
            "Block the range and open an incident",
            "Thanks",
        ],
    )
    examples = ExampleFormatter().format_exchanges(conversation, _result(ThreatCategory.NETWORK_INTRUSION))

    assert len(examples) == 2
    assert examples[0].user_message == "We saw a port scan on the edge firewall"
    assert examples[0].assistant_response == "Check the firewall logs for the source range"
    assert examples[1].user_message == "The source was a known botnet"
    assert all(e.conversation_id == "multi" for e in examples)

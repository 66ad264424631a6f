"""
Unit tests for the chat-completion classification hook.
"""

import pytest

from backend.hooks import ClassificationDispatcher


@pytest.fixture
def dispatcher(memory_store, classifier):
    hook = ClassificationDispatcher(memory_store, classifier, max_workers=2)
    yield hook
    hook.shutdown()


def test_completion_hook_classifies_in_background(dispatcher, memory_store, scenario_a_conversation):
    memory_store.save_conversation(scenario_a_conversation)

    future = dispatcher.on_conversation_completed("scenario-a")
    record = future.result(timeout=5)

    assert record.is_security_related is True
    assert memory_store.get_classification("scenario-a") == record


def test_unknown_conversation_is_ignored(dispatcher, memory_store):
    assert dispatcher.on_conversation_completed("missing").result(timeout=5) is None
    assert memory_store.get_classification("missing") is None


def test_redelivery_is_idempotent_and_keeps_claim(dispatcher, memory_store, scenario_a_conversation):
    memory_store.save_conversation(scenario_a_conversation)
    dispatcher.classify_now("scenario-a")
    memory_store.claim_batch(10, 0.5, job_id="job-1")

    again = dispatcher.on_conversation_completed("scenario-a").result(timeout=5)

    assert again.processed_for_training is True
    assert again.claimed_job_id == "job-1"
    assert again.confidence == 1.0


def test_failures_surface_on_the_future(dispatcher, memory_store, monkeypatch):
    def broken(conversation_id):
        raise RuntimeError("store offline")

    monkeypatch.setattr(memory_store, "get_conversation", broken)

    future = dispatcher.on_conversation_completed("c1")
    with pytest.raises(RuntimeError):
        future.result(timeout=5)

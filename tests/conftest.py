"""
Pytest configuration and shared fixtures.

Provides test configuration sections, stores, a scripted fine-tuning provider
and sample conversations for unit and integration tests.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import pytest

from backend.store import InMemoryStore, SqlStore
from curation.classification import SecurityClassifier
from curation.conversation.schema import Conversation
from curation.core.config import (
    ClassifierConfig,
    EvaluationConfig,
    ExampleConfig,
    TrainingTriggerConfig,
)
from curation.core.exceptions import ProviderError
from tuning.provider import FineTuningProvider
from tuning.schema import ProviderJobState, ProviderJobStatus


def security_texts(index: int) -> List[str]:
    """Three-message malware conversation that classifies with confidence 1.0."""

    return [
        f"I found a trojan on workstation {index}",
        f"It was detected via hash abc{index:04d} in the endpoint log",
        f"Recommend quarantine of workstation {index} right away",
    ]


class FakeProvider(FineTuningProvider):
    """
    Scripted provider.

    - submissions: every submit() call as (file_name, records, base_model, hyperparameters)
    - statuses: handle -> ProviderJobStatus, or an exception to raise
    - completions: model replies, consumed in order (last one repeats)
    """

    def __init__(self) -> None:
        self.submissions: List[Dict[str, Any]] = []
        self.statuses: Dict[str, Any] = {}
        self.completions: List[str] = []
        self.completion_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.prompts: List[List[Dict[str, str]]] = []

    def submit(
        self,
        file_name: str,
        records: Sequence[Mapping[str, Any]],
        base_model: str,
        hyperparameters: Optional[Mapping[str, Any]] = None,
    ) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append(
            {
                "file_name": file_name,
                "records": list(records),
                "base_model": base_model,
                "hyperparameters": dict(hyperparameters or {}),
            }
        )
        return f"ftjob-{len(self.submissions)}"

    def set_state(
        self,
        handle: str,
        state: ProviderJobState,
        fine_tuned_model: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        self.statuses[handle] = ProviderJobStatus(
            handle=handle,
            state=state,
            raw_status=state.value,
            fine_tuned_model=fine_tuned_model,
            error=error,
        )

    def get_status(self, handle: str) -> ProviderJobStatus:
        status = self.statuses.get(handle)
        if status is None:
            raise ProviderError(f"Unknown handle {handle}")
        if isinstance(status, Exception):
            raise status
        return status

    def complete(self, model_id: str, messages: List[Dict[str, str]]) -> str:
        if self.completion_error is not None:
            raise self.completion_error
        self.prompts.append(messages)
        if not self.completions:
            return ""
        if len(self.completions) > 1:
            return self.completions.pop(0)
        return self.completions[0]


@pytest.fixture
def classifier_config() -> ClassifierConfig:
    return ClassifierConfig()


@pytest.fixture
def example_config() -> ExampleConfig:
    return ExampleConfig()


@pytest.fixture
def training_config() -> TrainingTriggerConfig:
    """
    Trigger settings matching production defaults, with a short lease.
    """

    return TrainingTriggerConfig(
        minimum_job_threshold=50,
        trigger_confidence_threshold=0.5,
        batch_size=100,
        min_valid_examples=10,
        lease_ttl_seconds=60,
    )


@pytest.fixture
def evaluation_config() -> EvaluationConfig:
    return EvaluationConfig(min_confidence=0.8, sample_size=20)


@pytest.fixture
def classifier(classifier_config) -> SecurityClassifier:
    return SecurityClassifier(config=classifier_config)


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sql_store() -> SqlStore:
    store = SqlStore("sqlite:///:memory:")
    store.create_schema()
    yield store
    store.engine.dispose()


@pytest.fixture
def file_sql_store(tmp_path) -> SqlStore:
    """SqlStore on a SQLite file, so each thread gets its own connection."""

    store = SqlStore(f"sqlite:///{tmp_path / 'curation.db'}")
    store.create_schema()
    yield store
    store.engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Runs store-contract tests against every implementation."""

    if request.param == "memory":
        return InMemoryStore()
    sql = SqlStore("sqlite:///:memory:")
    sql.create_schema()
    request.addfinalizer(sql.engine.dispose)
    return sql


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def scenario_a_conversation() -> Conversation:
    return Conversation.from_texts(
        "scenario-a",
        ["I found a trojan in the log", "It was detected via hash abc123", "Recommend quarantine"],
    )


@pytest.fixture
def generic_conversation() -> Conversation:
    return Conversation.from_texts(
        "generic",
        [
            "Hello, can you help me plan a birthday party?",
            "Sure, how many guests are you expecting?",
            "About twenty friends and family members.",
        ],
    )


@pytest.fixture
def seed_conversations(classifier) -> Callable[..., List[str]]:
    """
    Returns seed(store, count, texts_for=security_texts, prefix="conv").

    Saves each conversation and its classification; returns the ids.
    """

    def seed(store, count: int, texts_for=security_texts, prefix: str = "conv") -> List[str]:
        ids = []
        for index in range(count):
            conversation = Conversation.from_texts(f"{prefix}-{index:04d}", texts_for(index))
            store.save_conversation(conversation)
            store.save_classification(classifier.classify_record(conversation))
            ids.append(conversation.conversation_id)
        return ids

    return seed


def pytest_configure(config):
    """
    Pytest hook for custom configuration.

    Registers custom markers used throughout tests.
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (deferred CI)"
    )

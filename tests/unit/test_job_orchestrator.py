"""
Unit tests for the fine-tuning job state machine.
"""

import pytest

from backend.training import JobOrchestrator, JobStatus
from backend.training.schema import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, can_transition
from curation.core.config import TrainingTriggerConfig
from curation.core.exceptions import (
    InvalidTransitionError,
    JobConflictError,
    ProviderError,
    ProviderTimeoutError,
    StoreError,
)
from tuning.schema import ProviderJobState


@pytest.fixture
def orchestrator(memory_store, fake_provider, training_config, example_config):
    return JobOrchestrator(
        store=memory_store,
        provider=fake_provider,
        training_config=training_config,
        example_config=example_config,
    )


@pytest.fixture
def submitted_job(orchestrator, memory_store, seed_conversations):
    seed_conversations(memory_store, 12)
    return orchestrator.run(orchestrator.create_job())


def test_create_job_starts_preparing(orchestrator, memory_store, training_config):
    job = orchestrator.create_job()

    assert job.status == JobStatus.PREPARING
    assert job.job_name.startswith(training_config.job_name_prefix)
    assert job.hyperparameters == training_config.hyperparameters
    assert memory_store.get_job(job.id).status == JobStatus.PREPARING


def test_scenario_d_insufficient_examples_fail_without_provider_call(
    orchestrator, memory_store, fake_provider, seed_conversations
):
    seed_conversations(memory_store, 5)
    job = orchestrator.create_job()

    assembly = orchestrator.assemble_batch(job)

    assert assembly.job.status == JobStatus.FAILED
    assert "Insufficient valid training examples" in assembly.job.error_message
    assert assembly.claimed_count == 5
    assert assembly.examples == []
    assert fake_provider.submissions == []
    assert memory_store.get_job(job.id).status == JobStatus.FAILED


def test_run_submits_valid_examples(orchestrator, memory_store, fake_provider, seed_conversations):
    seed_conversations(memory_store, 12)
    job = orchestrator.run(orchestrator.create_job())

    assert job.status == JobStatus.DATA_UPLOADED
    assert job.provider_job_id == "ftjob-1"
    assert job.training_data_count == 12
    submission = fake_provider.submissions[0]
    assert submission["file_name"] == f"{job.job_name}.jsonl"
    assert len(submission["records"]) == 12
    assert submission["records"][0]["messages"][0]["role"] == "system"
    assert len(memory_store.list_training_examples(job.id)) == 12
    assert memory_store.count_qualifying(0.5) == 0


def test_invalid_examples_are_dropped_not_fatal(orchestrator, memory_store, fake_provider, seed_conversations):
    seed_conversations(memory_store, 11)
    seed_conversations(
        memory_store,
        2,
        texts_for=lambda i: ["trojan hash", "ok", "quarantine malware"],
        prefix="short",
    )

    assembly = orchestrator.assemble_batch(orchestrator.create_job())

    assert assembly.claimed_count == 13
    assert len(assembly.examples) == 11
    assert len(assembly.report.invalid) == 2


def test_batch_size_bounds_the_claim(memory_store, fake_provider, seed_conversations, example_config):
    seed_conversations(memory_store, 30)
    orchestrator = JobOrchestrator(
        store=memory_store,
        provider=fake_provider,
        training_config=TrainingTriggerConfig(batch_size=20, min_valid_examples=10),
        example_config=example_config,
    )

    assembly = orchestrator.assemble_batch(orchestrator.create_job())

    assert assembly.claimed_count == 20
    assert memory_store.count_qualifying(0.5) == 10


def test_submission_error_fails_job(orchestrator, memory_store, fake_provider, seed_conversations):
    seed_conversations(memory_store, 12)
    fake_provider.submit_error = ProviderError("quota exceeded")

    job = orchestrator.run(orchestrator.create_job())

    assert job.status == JobStatus.FAILED
    assert "quota exceeded" in job.error_message


def test_claim_store_error_fails_job(orchestrator, memory_store, fake_provider, seed_conversations, monkeypatch):
    seed_conversations(memory_store, 12)

    def unavailable(limit, min_confidence, job_id=None):
        raise StoreError("connection lost")

    monkeypatch.setattr(memory_store, "claim_batch", unavailable)

    assembly = orchestrator.assemble_batch(orchestrator.create_job())

    assert assembly.job.status == JobStatus.FAILED
    assert assembly.job.error_message == "Batch assembly failed: connection lost"
    assert assembly.claimed_count == 0
    assert memory_store.get_job(assembly.job.id).status == JobStatus.FAILED
    assert fake_provider.submissions == []


def test_submit_requires_preparing(orchestrator, submitted_job):
    with pytest.raises(InvalidTransitionError):
        orchestrator.submit(submitted_job)


def test_poll_running_then_succeeded(orchestrator, fake_provider, submitted_job):
    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.RUNNING)
    training = orchestrator.poll_status(submitted_job)
    assert training.status == JobStatus.TRAINING

    assert orchestrator.poll_status(training).status == JobStatus.TRAINING

    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.SUCCEEDED, fine_tuned_model="ft:sec:1")
    completed = orchestrator.poll_status(training)
    assert completed.status == JobStatus.COMPLETED
    assert completed.fine_tuned_model_id == "ft:sec:1"
    assert completed.completed_at is not None


def test_poll_succeeded_directly_from_data_uploaded(orchestrator, fake_provider, submitted_job):
    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.SUCCEEDED, fine_tuned_model="ft:sec:2")

    assert orchestrator.poll_status(submitted_job).status == JobStatus.COMPLETED


def test_poll_succeeded_without_model_fails_job(orchestrator, memory_store, fake_provider, submitted_job):
    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.SUCCEEDED, fine_tuned_model=None)

    failed = orchestrator.poll_status(submitted_job)

    assert failed.status == JobStatus.FAILED
    assert failed.fine_tuned_model_id is None
    assert "without a fine-tuned model" in failed.error_message
    assert memory_store.get_job(submitted_job.id).status == JobStatus.FAILED


@pytest.mark.parametrize("state", [ProviderJobState.FAILED, ProviderJobState.CANCELLED])
def test_poll_failed_or_cancelled_fails_job(orchestrator, fake_provider, submitted_job, state):
    fake_provider.set_state(submitted_job.provider_job_id, state, error="bad data" if state == ProviderJobState.FAILED else None)

    job = orchestrator.poll_status(submitted_job)

    assert job.status == JobStatus.FAILED
    assert job.error_message


@pytest.mark.parametrize("state", [ProviderJobState.QUEUED, ProviderJobState.UNKNOWN])
def test_poll_queued_or_unknown_is_a_no_op(orchestrator, fake_provider, submitted_job, state):
    fake_provider.set_state(submitted_job.provider_job_id, state)

    assert orchestrator.poll_status(submitted_job).status == JobStatus.DATA_UPLOADED


def test_poll_timeout_leaves_job_unchanged(orchestrator, memory_store, fake_provider, submitted_job):
    fake_provider.statuses[submitted_job.provider_job_id] = ProviderTimeoutError("slow")

    job = orchestrator.poll_status(submitted_job)

    assert job.status == JobStatus.DATA_UPLOADED
    assert memory_store.get_job(submitted_job.id).status == JobStatus.DATA_UPLOADED


def test_poll_provider_error_fails_job(orchestrator, fake_provider, submitted_job):
    fake_provider.statuses[submitted_job.provider_job_id] = ProviderError("500 from provider")

    job = orchestrator.poll_status(submitted_job)

    assert job.status == JobStatus.FAILED
    assert "500 from provider" in job.error_message


def test_terminal_jobs_never_change(orchestrator, fake_provider, submitted_job):
    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.FAILED, error="boom")
    failed = orchestrator.poll_status(submitted_job)

    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.SUCCEEDED, fine_tuned_model="ft:x")
    assert orchestrator.poll_status(failed).status == JobStatus.FAILED


def test_stale_job_copy_raises_conflict(orchestrator, fake_provider, submitted_job):
    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.RUNNING)
    orchestrator.poll_status(submitted_job)

    fake_provider.set_state(submitted_job.provider_job_id, ProviderJobState.FAILED, error="late")
    stale = submitted_job
    assert stale.status == JobStatus.DATA_UPLOADED
    with pytest.raises(JobConflictError):
        orchestrator.poll_status(stale)


def test_transition_table_has_no_exits_from_terminal_states():
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()
    assert can_transition(JobStatus.PREPARING, JobStatus.FAILED)
    assert not can_transition(JobStatus.TRAINING, JobStatus.DATA_UPLOADED)
    assert not can_transition(JobStatus.PREPARING, JobStatus.COMPLETED)

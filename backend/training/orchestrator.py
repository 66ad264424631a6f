"""
Fine-tuning job orchestration.

Owns the job state machine:

    PREPARING -> DATA_UPLOADED -> TRAINING -> COMPLETED
    FAILED from any non-terminal state

Every transition goes through the store's compare-and-set, so two callers
polling the same job cannot both move it. External failures are captured on
the job as FAILED; they are never retried here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional
from uuid import uuid4

from curation.classification.schema import ClassificationRecord
from curation.core.config import ExampleConfig, TrainingTriggerConfig, config
from curation.core.exceptions import (
    InvalidTransitionError,
    JobConflictError,
    ProviderError,
    ProviderTimeoutError,
    StoreError,
)
from curation.examples import ExampleFormatter, ValidationReport, validate_batch
from curation.examples.schema import TrainingExample
from tuning.provider import FineTuningProvider
from tuning.schema import ProviderJobState

from .schema import FineTuningJob, JobStatus, can_transition, utcnow

if TYPE_CHECKING:
    from backend.store.base import TrainingStore

logger = logging.getLogger("backend.training")


@dataclass
class BatchAssembly:
    """
    Outcome of claiming and preparing a job's training data.

    Fields:
    - job: job after assembly (PREPARING, or FAILED when data was insufficient)
    - examples: valid examples attached to the job
    - claimed_count: classification records this job claimed
    - report: validation report over the formatted examples
    """

    job: FineTuningJob
    examples: List[TrainingExample] = field(default_factory=list)
    claimed_count: int = 0
    report: ValidationReport = field(default_factory=ValidationReport)


@dataclass
class JobOrchestrator:
    """
    Drives one fine-tuning job from data assembly to a terminal state.
    """

    store: "TrainingStore"
    provider: FineTuningProvider
    formatter: ExampleFormatter = field(default_factory=ExampleFormatter)
    training_config: TrainingTriggerConfig = field(default_factory=lambda: config.training)
    example_config: ExampleConfig = field(default_factory=lambda: config.examples)

    def create_job(self, model_type: Optional[str] = None, base_model: Optional[str] = None) -> FineTuningJob:
        cfg = self.training_config
        job_id = str(uuid4())
        job = FineTuningJob(
            id=job_id,
            job_name=f"{cfg.job_name_prefix}-{utcnow().strftime('%Y%m%d-%H%M%S')}-{job_id[:8]}",
            model_type=model_type or cfg.model_type,
            base_model=base_model or cfg.base_model,
            hyperparameters=dict(cfg.hyperparameters),
        )
        self.store.create_job(job)
        logger.info("Created job %s (%s)", job.id, job.job_name)
        return job

    def assemble_batch(self, job: FineTuningJob) -> BatchAssembly:
        """
        Claim qualifying records for the job and turn them into valid examples.

        Records are claimed even when the batch ends up too small; they stay
        claimed by the failed job and are not offered to later jobs. A store
        failure part way through fails the job so its claim stays visible.
        """

        self._require_status(job, JobStatus.PREPARING, "assemble a batch for")
        cfg = self.training_config

        claimed: List[ClassificationRecord] = []
        try:
            claimed = self.store.claim_batch(cfg.batch_size, cfg.trigger_confidence_threshold, job_id=job.id)
            logger.info("Job %s claimed %d records", job.id, len(claimed))
            return self._prepare_examples(job, claimed)
        except StoreError as exc:
            logger.error("Job %s batch assembly failed: %s", job.id, exc)
            failed = self._transition(job, JobStatus.FAILED, {"error_message": f"Batch assembly failed: {exc}"})
            return BatchAssembly(job=failed, claimed_count=len(claimed))

    def _prepare_examples(self, job: FineTuningJob, claimed: List[ClassificationRecord]) -> BatchAssembly:
        cfg = self.training_config
        formatted = self._format_records(claimed, job.id)
        report = validate_batch(formatted, self.example_config)
        if report.errors:
            logger.info("Job %s validation: %s", job.id, report.summary())
            for issue in report.errors:
                logger.debug("Job %s invalid example: %s", job.id, issue)

        if len(report.valid) < cfg.min_valid_examples:
            message = (
                f"Insufficient valid training examples: {len(report.valid)} "
                f"(minimum {cfg.min_valid_examples})"
            )
            failed = self._transition(job, JobStatus.FAILED, {"error_message": message})
            return BatchAssembly(job=failed, claimed_count=len(claimed), report=report)

        examples = [example.attach_to(job.id) for example in report.valid]
        self.store.add_training_examples(job.id, examples)
        return BatchAssembly(job=job, examples=examples, claimed_count=len(claimed), report=report)

    def submit(self, job: FineTuningJob, examples: Optional[List[TrainingExample]] = None) -> FineTuningJob:
        """
        Upload the job's examples and create the provider job.
        """

        self._require_status(job, JobStatus.PREPARING, "submit")
        if examples is None:
            examples = self.store.list_training_examples(job.id)

        records = [example.to_training_record() for example in examples]
        try:
            handle = self.provider.submit(
                f"{job.job_name}.jsonl",
                records,
                job.base_model,
                job.hyperparameters,
            )
        except ProviderError as exc:
            logger.error("Job %s submission failed: %s", job.id, exc)
            return self._transition(job, JobStatus.FAILED, {"error_message": f"Submission failed: {exc}"})

        return self._transition(
            job,
            JobStatus.DATA_UPLOADED,
            {"provider_job_id": handle, "training_data_count": len(records)},
        )

    def poll_status(self, job: FineTuningJob) -> FineTuningJob:
        """
        Fold the provider's view of the job into its state.
        """

        if job.is_terminal:
            return job
        if not job.provider_job_id:
            raise InvalidTransitionError(f"Job {job.id} has not been submitted")

        try:
            status = self.provider.get_status(job.provider_job_id)
        except ProviderTimeoutError as exc:
            logger.warning("Status poll for job %s timed out: %s", job.id, exc)
            return job
        except ProviderError as exc:
            logger.error("Status poll for job %s failed: %s", job.id, exc)
            return self._transition(job, JobStatus.FAILED, {"error_message": f"Status check failed: {exc}"})

        state = status.state
        if state == ProviderJobState.RUNNING:
            if job.status == JobStatus.TRAINING:
                return job
            return self._transition(job, JobStatus.TRAINING, {})

        if state == ProviderJobState.SUCCEEDED:
            if not status.fine_tuned_model:
                logger.error("Job %s succeeded at the provider without a model id", job.id)
                return self._transition(
                    job,
                    JobStatus.FAILED,
                    {"error_message": "Provider reported success without a fine-tuned model"},
                )
            return self._transition(
                job,
                JobStatus.COMPLETED,
                {"fine_tuned_model_id": status.fine_tuned_model, "completed_at": utcnow()},
            )

        if state in (ProviderJobState.FAILED, ProviderJobState.CANCELLED):
            reason = status.error or f"Provider reported {status.raw_status or state.value}"
            return self._transition(job, JobStatus.FAILED, {"error_message": reason})

        logger.debug("Job %s provider state %s, no change", job.id, status.raw_status)
        return job

    def run(self, job: FineTuningJob) -> FineTuningJob:
        assembly = self.assemble_batch(job)
        if assembly.job.status == JobStatus.FAILED:
            return assembly.job
        return self.submit(assembly.job, assembly.examples)

    def _format_records(self, records: List[ClassificationRecord], job_id: str) -> List[TrainingExample]:
        examples: List[TrainingExample] = []
        for record in records:
            conversation = self.store.get_conversation(record.conversation_id)
            if conversation is None:
                logger.warning("Job %s: conversation %s missing from store", job_id, record.conversation_id)
                continue
            examples.append(self.formatter.format(conversation, record, job_id=job_id))
        return examples

    def _require_status(self, job: FineTuningJob, expected: JobStatus, action: str) -> None:
        if job.status != expected:
            raise InvalidTransitionError(f"Cannot {action} job {job.id} in status {job.status.value}")

    def _transition(self, job: FineTuningJob, target: JobStatus, changes: Mapping[str, Any]) -> FineTuningJob:
        if not can_transition(job.status, target):
            raise InvalidTransitionError(
                f"Job {job.id}: {job.status.value} -> {target.value} is not allowed"
            )

        update: Dict[str, Any] = dict(changes)
        update["status"] = target
        updated = self.store.transition_job(job.id, job.status, update)

        if updated is None:
            raise JobConflictError(
                f"Job {job.id} is no longer {job.status.value}; another caller transitioned it"
            )

        logger.info("Job %s: %s -> %s", job.id, job.status.value, target.value)
        return updated

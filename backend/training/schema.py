"""
Schema for fine-tuning jobs and model evaluations.

Job status moves forward only. FAILED is reachable from every non-terminal
state; COMPLETED and FAILED are terminal.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """Fine-tuning job lifecycle states."""

    PREPARING = "preparing"
    DATA_UPLOADED = "data_uploaded"
    TRAINING = "training"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

ACTIVE_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.DATA_UPLOADED, JobStatus.TRAINING})

ALLOWED_TRANSITIONS: Mapping[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PREPARING: frozenset({JobStatus.DATA_UPLOADED, JobStatus.FAILED}),
    JobStatus.DATA_UPLOADED: frozenset({JobStatus.TRAINING, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.TRAINING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class FineTuningJob(BaseModel):
    """
    One external model-training run, tracked end to end.

    Fields:
    - id: stable unique identifier
    - job_name: human-readable name, also used for the training file
    - model_type / base_model: logical family and provider base model id
    - status: lifecycle state
    - training_data_count: examples submitted to the provider
    - hyperparameters: provider hyperparameters sent with the job
    - provider_job_id: provider handle once submitted
    - fine_tuned_model_id: resulting model (COMPLETED only)
    - error_message: failure reason (FAILED only)
    """

    model_config = ConfigDict(protected_namespaces=())

    id: str = Field(default_factory=lambda: str(uuid4()))
    job_name: str
    model_type: str
    base_model: str
    status: JobStatus = JobStatus.PREPARING
    training_data_count: int = Field(0, ge=0)
    hyperparameters: Dict[str, Any] = Field(default_factory=dict)
    provider_job_id: Optional[str] = None
    fine_tuned_model_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class PerformanceRecord(BaseModel):
    """
    Append-only evaluation result for a fine-tuned model.

    Fields:
    - model_id: evaluated model
    - job_id: job that produced the model, when known
    - evaluation_type: metric family ("accuracy")
    - score: correct / total in [0.0, 1.0]
    - test_data_size: number of held-out samples scored
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    record_id: str = Field(default_factory=lambda: str(uuid4()))
    model_id: str
    job_id: Optional[str] = None
    evaluation_type: str = "accuracy"
    score: float = Field(ge=0.0, le=1.0)
    test_data_size: int = Field(ge=1)
    evaluation_date: datetime = Field(default_factory=utcnow)

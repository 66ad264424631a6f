"""
Storage contract for the curation and training pipeline.

All shared state (classification claims, job status, leases) lives behind
this interface. Implementations must provide:

- claim_batch: one atomic conditional update. A record is returned only if
  this call flipped its processed_for_training flag from False to True.
- transition_job: compare-and-set on the job's current status, applying the
  new status and its accompanying fields together.
- acquire_lease: compare-and-set on a named lease with expiry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from curation.classification.schema import ClassificationRecord
from curation.conversation.schema import Conversation
from curation.examples.schema import TrainingExample

from backend.training.schema import FineTuningJob, JobStatus, PerformanceRecord


class TrainingStore(ABC):
    """Abstract persistent store."""

    # Conversations

    @abstractmethod
    def save_conversation(self, conversation: Conversation) -> None:
        pass

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        pass

    # Classification records

    @abstractmethod
    def save_classification(self, record: ClassificationRecord) -> ClassificationRecord:
        """
        Insert or update a classification.

        An existing claim (processed_for_training, claimed_job_id) is kept;
        the returned record reflects what is stored.
        """
        pass

    @abstractmethod
    def get_classification(self, conversation_id: str) -> Optional[ClassificationRecord]:
        pass

    @abstractmethod
    def count_qualifying(self, min_confidence: float) -> int:
        """
        Count security-related, unclaimed records with confidence >= min_confidence.
        """
        pass

    @abstractmethod
    def claim_batch(
        self, limit: int, min_confidence: float, job_id: Optional[str] = None
    ) -> List[ClassificationRecord]:
        """
        Atomically claim up to limit qualifying records, oldest first.

        May return fewer than limit when another caller claimed first.
        """
        pass

    @abstractmethod
    def select_evaluation_sample(
        self, min_confidence: float, limit: int, exclude_job_id: Optional[str] = None
    ) -> List[ClassificationRecord]:
        """
        Security-related records with a threat category and confidence >=
        min_confidence, highest confidence first, skipping records claimed by
        exclude_job_id.
        """
        pass

    # Jobs

    @abstractmethod
    def create_job(self, job: FineTuningJob) -> FineTuningJob:
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[FineTuningJob]:
        pass

    @abstractmethod
    def transition_job(
        self, job_id: str, expected_status: JobStatus, changes: Mapping[str, Any]
    ) -> Optional[FineTuningJob]:
        """
        Apply changes only if the job is still in expected_status.

        Returns:
            The updated job, or None if the status no longer matches.

        Raises:
            StoreError: If the job does not exist
        """
        pass

    @abstractmethod
    def list_jobs(self, statuses: Optional[Iterable[JobStatus]] = None) -> List[FineTuningJob]:
        pass

    # Training examples

    @abstractmethod
    def add_training_examples(self, job_id: str, examples: Sequence[TrainingExample]) -> int:
        pass

    @abstractmethod
    def list_training_examples(self, job_id: str) -> List[TrainingExample]:
        pass

    # Performance records

    @abstractmethod
    def add_performance_record(self, record: PerformanceRecord) -> PerformanceRecord:
        pass

    @abstractmethod
    def list_performance_records(self, model_id: Optional[str] = None) -> List[PerformanceRecord]:
        pass

    # Leases

    @abstractmethod
    def acquire_lease(self, name: str, holder: str, ttl_seconds: int) -> bool:
        """
        Take the named lease if it is free, expired, or already held by holder.
        """
        pass

    @abstractmethod
    def release_lease(self, name: str, holder: str) -> None:
        pass

"""
In-memory TrainingStore.

Every operation runs under a single lock, which makes claim_batch,
transition_job and acquire_lease atomic compare-and-set operations within one
process. Returned objects are copies; mutating them never changes the store.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from curation.classification.schema import ClassificationRecord
from curation.conversation.schema import Conversation
from curation.core.exceptions import StoreError
from curation.examples.schema import TrainingExample

from backend.training.schema import FineTuningJob, JobStatus, PerformanceRecord

from .base import TrainingStore

_CLAIM_FIELDS = ("processed_for_training", "claimed_job_id")


class InMemoryStore(TrainingStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conversations: Dict[str, Conversation] = {}
        self._classifications: Dict[str, ClassificationRecord] = {}
        self._jobs: Dict[str, FineTuningJob] = {}
        self._examples: Dict[str, List[TrainingExample]] = {}
        self._performance: List[PerformanceRecord] = []
        self._leases: Dict[str, Tuple[str, datetime]] = {}

    def save_conversation(self, conversation: Conversation) -> None:
        with self._lock:
            self._conversations[conversation.conversation_id] = conversation

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        with self._lock:
            return self._conversations.get(conversation_id)

    def save_classification(self, record: ClassificationRecord) -> ClassificationRecord:
        with self._lock:
            existing = self._classifications.get(record.conversation_id)
            if existing is not None and existing.processed_for_training:
                record = record.model_copy(
                    update={field: getattr(existing, field) for field in _CLAIM_FIELDS}
                )
            self._classifications[record.conversation_id] = record.model_copy()
            return record.model_copy()

    def get_classification(self, conversation_id: str) -> Optional[ClassificationRecord]:
        with self._lock:
            record = self._classifications.get(conversation_id)
            return record.model_copy() if record is not None else None

    def count_qualifying(self, min_confidence: float) -> int:
        with self._lock:
            return sum(1 for r in self._classifications.values() if r.qualifies(min_confidence))

    def claim_batch(
        self, limit: int, min_confidence: float, job_id: Optional[str] = None
    ) -> List[ClassificationRecord]:
        with self._lock:
            candidates = sorted(
                (r for r in self._classifications.values() if r.qualifies(min_confidence)),
                key=lambda r: (r.classified_at, r.conversation_id),
            )[:limit]

            claimed: List[ClassificationRecord] = []
            for record in candidates:
                updated = record.model_copy(
                    update={"processed_for_training": True, "claimed_job_id": job_id}
                )
                self._classifications[record.conversation_id] = updated
                claimed.append(updated.model_copy())
            return claimed

    def select_evaluation_sample(
        self, min_confidence: float, limit: int, exclude_job_id: Optional[str] = None
    ) -> List[ClassificationRecord]:
        with self._lock:
            sample = [
                r
                for r in self._classifications.values()
                if r.is_security_related
                and r.threat_category is not None
                and r.confidence >= min_confidence
                and (exclude_job_id is None or r.claimed_job_id != exclude_job_id)
            ]
            sample.sort(key=lambda r: (-r.confidence, r.conversation_id))
            return [r.model_copy() for r in sample[:limit]]

    def create_job(self, job: FineTuningJob) -> FineTuningJob:
        with self._lock:
            if job.id in self._jobs:
                raise StoreError(f"Job already exists: {job.id}")
            self._jobs[job.id] = job.model_copy(deep=True)
            return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[FineTuningJob]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job is not None else None

    def transition_job(
        self, job_id: str, expected_status: JobStatus, changes: Mapping[str, Any]
    ) -> Optional[FineTuningJob]:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise StoreError(f"Unknown job: {job_id}")
            if current.status != expected_status:
                return None
            updates = dict(changes)
            updates["updated_at"] = datetime.now(timezone.utc)
            updated = current.model_copy(update=updates, deep=True)
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def list_jobs(self, statuses: Optional[Iterable[JobStatus]] = None) -> List[FineTuningJob]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            jobs = [
                j.model_copy(deep=True)
                for j in self._jobs.values()
                if wanted is None or j.status in wanted
            ]
        jobs.sort(key=lambda j: (j.created_at, j.id))
        return jobs

    def add_training_examples(self, job_id: str, examples: Sequence[TrainingExample]) -> int:
        with self._lock:
            if job_id not in self._jobs:
                raise StoreError(f"Unknown job: {job_id}")
            bucket = self._examples.setdefault(job_id, [])
            bucket.extend(e.attach_to(job_id) for e in examples)
            return len(examples)

    def list_training_examples(self, job_id: str) -> List[TrainingExample]:
        with self._lock:
            return list(self._examples.get(job_id, []))

    def add_performance_record(self, record: PerformanceRecord) -> PerformanceRecord:
        with self._lock:
            if any(r.record_id == record.record_id for r in self._performance):
                raise StoreError(f"Performance record already exists: {record.record_id}")
            self._performance.append(record)
            return record

    def list_performance_records(self, model_id: Optional[str] = None) -> List[PerformanceRecord]:
        with self._lock:
            return [r for r in self._performance if model_id is None or r.model_id == model_id]

    def acquire_lease(self, name: str, holder: str, ttl_seconds: int) -> bool:
        now = datetime.now(timezone.utc)
        with self._lock:
            current = self._leases.get(name)
            if current is not None:
                current_holder, expires_at = current
                if current_holder != holder and expires_at > now:
                    return False
            self._leases[name] = (holder, now + timedelta(seconds=ttl_seconds))
            return True

    def release_lease(self, name: str, holder: str) -> None:
        with self._lock:
            current = self._leases.get(name)
            if current is not None and current[0] == holder:
                del self._leases[name]

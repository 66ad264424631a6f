"""
Threshold-triggered job scheduling.

check_and_trigger() is meant to be called from cron, the CLI or an HTTP
endpoint. Overlapping invocations are serialized by a store lease, and the
batch claim itself is atomic, so at most one job starts per qualifying batch.
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional
from uuid import uuid4

from curation.core.config import TrainingTriggerConfig, config
from curation.core.exceptions import EvaluationError, JobConflictError

from .evaluator import PerformanceEvaluator
from .orchestrator import JobOrchestrator
from .schema import ACTIVE_STATUSES, FineTuningJob, JobStatus

if TYPE_CHECKING:
    from backend.store.base import TrainingStore

logger = logging.getLogger("backend.scheduler")

TRIGGER_LEASE = "training-trigger"


def _default_holder() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


@dataclass
class TriggerResult:
    """
    Fields:
    - triggered: a job was started by this call
    - qualifying_count: qualifying unclaimed records seen (0 when busy)
    - job: the started job, in whatever state it reached
    - reason: "started", "below_threshold" or "busy"
    """

    triggered: bool
    qualifying_count: int
    job: Optional[FineTuningJob] = None
    reason: str = ""


@dataclass
class TriggerScheduler:
    store: "TrainingStore"
    orchestrator: JobOrchestrator
    evaluator: Optional[PerformanceEvaluator] = None
    training_config: TrainingTriggerConfig = field(default_factory=lambda: config.training)
    holder: str = field(default_factory=_default_holder)

    def check_and_trigger(self) -> TriggerResult:
        cfg = self.training_config
        if not self.store.acquire_lease(TRIGGER_LEASE, self.holder, cfg.lease_ttl_seconds):
            logger.info("Trigger lease held elsewhere; skipping")
            return TriggerResult(triggered=False, qualifying_count=0, reason="busy")

        try:
            count = self.store.count_qualifying(cfg.trigger_confidence_threshold)
            if count < cfg.minimum_job_threshold:
                logger.info(
                    "Qualifying records %d below threshold %d; no job started",
                    count,
                    cfg.minimum_job_threshold,
                )
                return TriggerResult(triggered=False, qualifying_count=count, reason="below_threshold")

            logger.info("Qualifying records %d reached threshold %d; starting job", count, cfg.minimum_job_threshold)
            job = self.orchestrator.create_job()
            job = self.orchestrator.run(job)
            return TriggerResult(triggered=True, qualifying_count=count, job=job, reason="started")
        finally:
            self.store.release_lease(TRIGGER_LEASE, self.holder)

    def poll_active_jobs(self) -> List[FineTuningJob]:
        """
        Poll every in-flight job; evaluate models that completed on this poll.

        Returns the jobs after polling.
        """

        polled: List[FineTuningJob] = []
        for job in self.store.list_jobs(ACTIVE_STATUSES):
            try:
                updated = self.orchestrator.poll_status(job)
            except JobConflictError as exc:
                logger.info("Skipping job %s: %s", job.id, exc)
                continue
            polled.append(updated)

            if (
                updated.status == JobStatus.COMPLETED
                and updated.fine_tuned_model_id
                and self.evaluator is not None
            ):
                try:
                    self.evaluator.evaluate(updated.fine_tuned_model_id, job_id=updated.id)
                except EvaluationError as exc:
                    logger.error("Evaluation of %s failed: %s", updated.fine_tuned_model_id, exc)

        return polled

"""
Fine-tuning job lifecycle: schema, orchestration, scheduling and evaluation.
"""

from .evaluator import PerformanceEvaluator, exact_category_match, normalize_prediction
from .orchestrator import BatchAssembly, JobOrchestrator
from .scheduler import TRIGGER_LEASE, TriggerResult, TriggerScheduler
from .schema import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    FineTuningJob,
    JobStatus,
    PerformanceRecord,
    can_transition,
)

__all__ = [
    "PerformanceEvaluator",
    "exact_category_match",
    "normalize_prediction",
    "BatchAssembly",
    "JobOrchestrator",
    "TRIGGER_LEASE",
    "TriggerResult",
    "TriggerScheduler",
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "FineTuningJob",
    "JobStatus",
    "PerformanceRecord",
    "can_transition",
]

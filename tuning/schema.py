"""
Provider-neutral fine-tuning job status.

Providers report their own status vocabularies; normalize_state() folds them
into the small set the orchestrator understands. Anything unrecognized maps to
UNKNOWN and is kept verbatim in raw_status.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ProviderJobState(str, Enum):
    """Normalized provider job states."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


_STATE_ALIASES = {
    "validating_files": ProviderJobState.QUEUED,
    "queued": ProviderJobState.QUEUED,
    "pending": ProviderJobState.QUEUED,
    "running": ProviderJobState.RUNNING,
    "succeeded": ProviderJobState.SUCCEEDED,
    "failed": ProviderJobState.FAILED,
    "cancelled": ProviderJobState.CANCELLED,
}


def normalize_state(raw_status: Optional[str]) -> ProviderJobState:
    if not raw_status:
        return ProviderJobState.UNKNOWN
    return _STATE_ALIASES.get(raw_status.strip().lower(), ProviderJobState.UNKNOWN)


class ProviderJobStatus(BaseModel):
    """
    Snapshot of a provider-side job.

    Fields:
    - handle: provider job identifier
    - state: normalized state
    - raw_status: status string exactly as reported
    - fine_tuned_model: resulting model id (succeeded jobs only)
    - error: provider error message (failed jobs only)
    """

    handle: str
    state: ProviderJobState
    raw_status: Optional[str] = None
    fine_tuned_model: Optional[str] = None
    error: Optional[str] = None

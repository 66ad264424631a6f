"""
Chat-completion hook.

The chat service calls on_conversation_completed() when a conversation ends.
Classification runs on a worker pool so the caller never waits on it.
Delivery is at-least-once: re-invoking for the same conversation re-classifies
and re-saves the record, which leaves any existing training claim in place.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Optional

from curation.classification import SecurityClassifier
from curation.classification.schema import ClassificationRecord

if TYPE_CHECKING:
    from backend.store.base import TrainingStore

logger = logging.getLogger("backend.hooks")


class ClassificationDispatcher:
    def __init__(
        self,
        store: "TrainingStore",
        classifier: Optional[SecurityClassifier] = None,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.classifier = classifier or SecurityClassifier()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="classify")

    def on_conversation_completed(self, conversation_id: str) -> "Future[Optional[ClassificationRecord]]":
        """
        Queue classification of a finished conversation and return immediately.
        """

        future = self._executor.submit(self.classify_now, conversation_id)
        future.add_done_callback(self._log_failure)
        return future

    def classify_now(self, conversation_id: str) -> Optional[ClassificationRecord]:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            logger.warning("Conversation %s not found; nothing to classify", conversation_id)
            return None

        record = self.store.save_classification(self.classifier.classify_record(conversation))
        logger.info(
            "Classified %s: security=%s confidence=%.2f category=%s",
            conversation_id,
            record.is_security_related,
            record.confidence,
            record.threat_category.value if record.threat_category else None,
        )
        return record

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _log_failure(future: Future) -> None:
        exc = future.exception() if not future.cancelled() else None
        if exc is not None:
            logger.error("Background classification failed: %s", exc)

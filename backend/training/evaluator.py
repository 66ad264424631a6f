"""
Held-out evaluation of fine-tuned models.

Each sampled conversation is sent to the model with the generic system prompt
plus a category question; the reply is compared with the recorded threat
category. Score is the fraction of correct replies.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from curation.classification.schema import ThreatCategory
from curation.conversation.schema import MessageRole
from curation.core.config import EvaluationConfig, config
from curation.core.exceptions import EvaluationError, ProviderError
from curation.examples.prompt import build_system_prompt
from tuning.provider import FineTuningProvider

from .schema import PerformanceRecord

if TYPE_CHECKING:
    from backend.store.base import TrainingStore

logger = logging.getLogger("backend.evaluation")

Comparator = Callable[[str, ThreatCategory], bool]

CATEGORY_QUESTION = (
    "Classify the threat category of the conversation. Answer with exactly one of: "
    + ", ".join(c.value for c in ThreatCategory)
    + "."
)

_NON_WORD = re.compile(r"[^a-z0-9]+")


def normalize_prediction(prediction: str) -> str:
    """
    Lower-case, collapse separators to "_" and trim punctuation.

    "Network Intrusion." and "network-intrusion" both become "network_intrusion".
    """

    return _NON_WORD.sub("_", prediction.strip().lower()).strip("_")


def exact_category_match(prediction: str, expected: ThreatCategory) -> bool:
    return normalize_prediction(prediction) == expected.value


@dataclass
class PerformanceEvaluator:
    """
    Scores a completed model against high-confidence classified conversations.

    Notes:
    - Records claimed by the job that produced the model are excluded.
    - Any provider failure aborts the evaluation without writing a record.
    """

    store: "TrainingStore"
    provider: FineTuningProvider
    evaluation_config: EvaluationConfig = field(default_factory=lambda: config.evaluation)
    comparator: Comparator = exact_category_match

    def evaluate(self, model_id: str, job_id: Optional[str] = None) -> Optional[PerformanceRecord]:
        cfg = self.evaluation_config
        sample = self.store.select_evaluation_sample(
            cfg.min_confidence, cfg.sample_size, exclude_job_id=job_id
        )
        if not sample:
            logger.info("No held-out sample for model %s; skipping evaluation", model_id)
            return None

        system_prompt = f"{build_system_prompt(None)} {CATEGORY_QUESTION}"
        correct = 0
        scored = 0

        for record in sample:
            conversation = self.store.get_conversation(record.conversation_id)
            if conversation is None:
                logger.warning("Evaluation sample %s has no stored conversation", record.conversation_id)
                continue

            user_text = "\n\n".join(conversation.contents_by_role(MessageRole.USER))
            messages = [
                {"role": MessageRole.SYSTEM.value, "content": system_prompt},
                {"role": MessageRole.USER.value, "content": user_text},
            ]
            try:
                prediction = self.provider.complete(model_id, messages)
            except ProviderError as exc:
                raise EvaluationError(f"Prediction failed for model {model_id}: {exc}") from exc

            scored += 1
            if self.comparator(prediction, record.threat_category):
                correct += 1

        if scored == 0:
            return None

        record = PerformanceRecord(
            model_id=model_id,
            job_id=job_id,
            evaluation_type=cfg.evaluation_type,
            score=correct / scored,
            test_data_size=scored,
        )
        self.store.add_performance_record(record)
        logger.info("Model %s scored %.3f on %d samples", model_id, record.score, scored)
        return record

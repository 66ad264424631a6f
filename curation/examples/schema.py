"""
Training example schema.

Each example is a system/user/assistant triple derived from one conversation
and its classification. Examples are inspectable JSON objects and serialize to
the chat "messages" format used by fine-tuning providers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from curation.classification.schema import ThreatCategory
from curation.conversation.schema import MessageRole


class TrainingExample(BaseModel):
    """
    Single fine-tuning unit.

    Fields:
    - example_id: unique identifier
    - conversation_id: source conversation
    - job_id: owning fine-tuning job (set when attached)
    - system_prompt: templated system prompt
    - user_message / assistant_response: conversation content
    - quality_score: classification confidence in [0.0, 1.0]
    - threat_category: category used to parameterize the system prompt
    """

    model_config = ConfigDict(frozen=True)

    example_id: str = Field(default_factory=lambda: str(uuid4()))
    conversation_id: str
    job_id: Optional[str] = None
    system_prompt: str
    user_message: str
    assistant_response: str
    quality_score: float = Field(ge=0.0, le=1.0)
    threat_category: Optional[ThreatCategory] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_messages(self) -> List[Dict[str, str]]:
        return [
            {"role": MessageRole.SYSTEM.value, "content": self.system_prompt},
            {"role": MessageRole.USER.value, "content": self.user_message},
            {"role": MessageRole.ASSISTANT.value, "content": self.assistant_response},
        ]

    def to_training_record(self) -> Dict[str, Any]:
        """JSONL line payload for provider training files."""

        return {"messages": self.to_messages()}

    def attach_to(self, job_id: str) -> "TrainingExample":
        return self.model_copy(update={"job_id": job_id})

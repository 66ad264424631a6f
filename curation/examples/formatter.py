"""
Conversation to training example formatting.

Formatting never raises: conversations missing a user or assistant turn
produce examples with empty text, which batch validation then rejects with an
attributable error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from curation.classification.schema import ClassificationResult
from curation.conversation.schema import Conversation, MessageRole

from .prompt import build_system_prompt
from .schema import TrainingExample


@dataclass
class ExampleFormatter:
    """
    Builds TrainingExample objects from classified conversations.

    Notes:
    - The system prompt depends only on the threat category.
    - quality_score is the classifier confidence.
    - turn_separator joins multiple user (or assistant) turns.
    """

    turn_separator: str = "\n\n"

    def format(
        self,
        conversation: Conversation,
        classification: ClassificationResult,
        job_id: Optional[str] = None,
    ) -> TrainingExample:
        user_turns = conversation.contents_by_role(MessageRole.USER)
        assistant_turns = conversation.contents_by_role(MessageRole.ASSISTANT)

        return TrainingExample(
            conversation_id=conversation.conversation_id,
            job_id=job_id,
            system_prompt=build_system_prompt(classification.threat_category),
            user_message=self.turn_separator.join(t.strip() for t in user_turns),
            assistant_response=self.turn_separator.join(t.strip() for t in assistant_turns),
            quality_score=classification.confidence,
            threat_category=classification.threat_category,
        )

    def format_exchanges(
        self,
        conversation: Conversation,
        classification: ClassificationResult,
        job_id: Optional[str] = None,
    ) -> List[TrainingExample]:
        """
        One example per user turn answered by the next assistant turn.

        Consecutive user turns are merged; trailing unanswered user turns are
        dropped.
        """

        system_prompt = build_system_prompt(classification.threat_category)
        examples: List[TrainingExample] = []
        pending_user: List[str] = []

        for message in conversation.ordered_messages():
            if message.role == MessageRole.USER:
                pending_user.append(message.content.strip())
            elif message.role == MessageRole.ASSISTANT and pending_user:
                examples.append(
                    TrainingExample(
                        conversation_id=conversation.conversation_id,
                        job_id=job_id,
                        system_prompt=system_prompt,
                        user_message=self.turn_separator.join(pending_user),
                        assistant_response=message.content.strip(),
                        quality_score=classification.confidence,
                        threat_category=classification.threat_category,
                    )
                )
                pending_user = []

        return examples

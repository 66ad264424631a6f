"""
Canonical conversation schema.

Conversations are ingested from the surrounding chat system and are never
modified by this package. Every component downstream (classifier, formatter,
evaluator) reads them through this representation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Chat roles understood by the training provider."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """
    Single chat message.

    Fields:
    - role: system, user or assistant
    - content: raw message text
    - sequence: position within the conversation (ordering key)
    """

    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str
    sequence: int = Field(ge=0)


class Conversation(BaseModel):
    """
    Immutable ordered message sequence.

    Messages may arrive out of order from the store; use ordered_messages()
    whenever order matters.
    """

    model_config = ConfigDict(frozen=True)

    conversation_id: str = Field(min_length=1)
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def ordered_messages(self) -> List[Message]:
        return sorted(self.messages, key=lambda m: m.sequence)

    def contents_by_role(self, role: MessageRole) -> List[str]:
        return [m.content for m in self.ordered_messages() if m.role == role]

    @classmethod
    def from_texts(cls, conversation_id: str, texts: List[str]) -> "Conversation":
        """
        Build a conversation from plain texts, alternating user/assistant roles.
        """

        roles = [MessageRole.USER, MessageRole.ASSISTANT]
        messages = [
            Message(role=roles[i % 2], content=text, sequence=i)
            for i, text in enumerate(texts)
        ]
        return cls(conversation_id=conversation_id, messages=messages)

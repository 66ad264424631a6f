"""
Conversation schema exports.
"""

from .schema import Conversation, Message, MessageRole

__all__ = [
    "Conversation",
    "Message",
    "MessageRole",
]

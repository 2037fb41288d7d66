"""
In-memory state models for the chat client.

This package contains the conversation list and the message timeline
the synchronization service writes to.
"""

from .conversation_list import ConversationList
from .message_store import MessageStore, PaginationCursor

__all__ = ["ConversationList", "MessageStore", "PaginationCursor"]

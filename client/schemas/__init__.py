"""
Pydantic schemas for the chat backend contract.

This package contains Pydantic models for REST payload validation and
the realtime channel's event names and payloads.
"""

from .chat import (
    Attachment,
    AttachmentUpload,
    Conversation,
    JobReference,
    LastMessagePreview,
    Message,
    ResolvedParticipants,
    UnresolvedParticipants,
    UserSummary,
)
from .events import RealtimeEvent

__all__ = [
    "Attachment",
    "AttachmentUpload",
    "Conversation",
    "JobReference",
    "LastMessagePreview",
    "Message",
    "RealtimeEvent",
    "ResolvedParticipants",
    "UnresolvedParticipants",
    "UserSummary",
]

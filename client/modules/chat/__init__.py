"""
Chat Synchronization Module

This module keeps the client's view of conversations and messages in sync
with the chat backend over REST and the realtime channel.

Key Components:
- ChatSyncService: Single writer of the conversation list and timeline
- UPGRADE_REQUIRED: Error value signalling a messaging subscription restriction
"""

from .service import UPGRADE_REQUIRED, ChatSyncService, cleanup_chat_service, get_chat_service

__all__ = [
    "UPGRADE_REQUIRED",
    "ChatSyncService",
    "cleanup_chat_service",
    "get_chat_service",
]

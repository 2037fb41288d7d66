"""
Realtime channel event names.

Type-safe enum for the Socket.IO events exchanged with the chat gateway.

Using StrEnum provides:
- Type safety and autocomplete
- String-like behavior (can be passed directly to the socket client)
"""

from enum import StrEnum


class RealtimeEvent(StrEnum):
    """Socket.IO events used by the chat synchronization client."""

    # Outgoing
    JOIN = "join"  # personal room, payload: user id
    JOIN_CONVERSATION = "joinConversation"  # payload: conversation id
    SEND_MESSAGE = "sendMessage"  # hint only, the REST POST is canonical
    TYPING = "typing"

    # Incoming
    JOINED_CONVERSATION = "joinedConversation"
    NEW_MESSAGE = "newMessage"
    USER_TYPING = "userTyping"
    MESSAGES_READ = "messagesRead"

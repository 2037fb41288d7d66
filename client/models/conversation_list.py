"""
Conversation list state.

Holds the user's conversation summaries in display order and guarantees
that no conversation id appears twice, whichever writer touched it last:
a list refresh, a conversation creation or a realtime preview patch.
"""

from typing import Iterable, Iterator, Optional

from schemas.chat import Conversation, LastMessagePreview


def deduplicate_conversations(conversations: Iterable[Conversation]) -> list[Conversation]:
    """Drop repeated conversation ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Conversation] = []
    for conversation in conversations:
        if conversation.id in seen:
            continue
        seen.add(conversation.id)
        unique.append(conversation)
    return unique


class ConversationList:
    """Unique-by-id collection of conversation summaries."""

    def __init__(self, conversations: Iterable[Conversation] = ()):
        self._conversations: list[Conversation] = deduplicate_conversations(conversations)

    def __len__(self) -> int:
        return len(self._conversations)

    def __iter__(self) -> Iterator[Conversation]:
        return iter(list(self._conversations))

    def __repr__(self):
        return f"<ConversationList(ids={self.ids()})>"

    @property
    def conversations(self) -> list[Conversation]:
        """Snapshot of the list in display order."""
        return list(self._conversations)

    def ids(self) -> list[str]:
        return [conversation.id for conversation in self._conversations]

    def get(self, conversation_id: str) -> Optional[Conversation]:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def contains(self, conversation_id: str) -> bool:
        return self.get(conversation_id) is not None

    def replace(self, conversations: Iterable[Conversation]) -> None:
        """Replace the whole list (a refresh), dropping duplicate ids."""
        self._conversations = deduplicate_conversations(conversations)

    def prepend(self, conversation: Conversation) -> None:
        """Put a conversation at the head of the list."""
        self._conversations = deduplicate_conversations([conversation, *self._conversations])

    def update(self, conversation: Conversation) -> bool:
        """
        Swap the entry that has the same id for a fresher copy.

        Args:
            conversation: Fresh conversation data

        Returns:
            bool: True if an entry was replaced
        """
        return self._apply(conversation.id, lambda _: conversation)

    def patch_preview(self, conversation_id: str, preview: LastMessagePreview) -> bool:
        """Set the last-message preview of one conversation."""
        return self._apply(
            conversation_id,
            lambda conv: conv.model_copy(update={"last_message": preview}),
        )

    def mark_read(self, conversation_id: str) -> bool:
        """Reset the unread counter of one conversation."""
        return self._apply(
            conversation_id,
            lambda conv: conv.model_copy(update={"unread_count": 0}),
        )

    def increment_unread(self, conversation_id: str) -> bool:
        """Count one more unread message for a conversation."""
        return self._apply(
            conversation_id,
            lambda conv: conv.model_copy(update={"unread_count": conv.unread_count + 1}),
        )

    def _apply(self, conversation_id: str, change) -> bool:
        changed = False
        updated: list[Conversation] = []
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                conversation = change(conversation)
                changed = True
            updated.append(conversation)
        self._conversations = updated
        return changed

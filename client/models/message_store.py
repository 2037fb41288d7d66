"""
Message timeline for the active conversation.

The store keeps the loaded messages sorted ascending by creation time and
unique by id, whichever path delivered them: a history page, an older page
fetched while scrolling back, a realtime push or the send fallback.
"""

from bisect import insort
from typing import Iterable, Iterator, Optional

from schemas.chat import Message


def _created_at(message: Message):
    return message.created_at


class PaginationCursor:
    """
    Backward-pagination state for the active conversation.

    `generation` changes on every reset so a response that was requested
    before the reset can be recognised and dropped.
    `is_loading_first` covers the newest page of a reset; older pages wait
    for it so they are numbered from the right place.
    """

    def __init__(self):
        self.next_page = 1
        self.has_more = True
        self.is_loading_first = False
        self.is_loading_more = False
        self.generation = 0

    def reset(self) -> None:
        self.next_page = 1
        self.has_more = True
        self.is_loading_first = False
        self.is_loading_more = False
        self.generation += 1

    def __repr__(self):
        return (
            f"<PaginationCursor(next_page={self.next_page}, has_more={self.has_more}, "
            f"loading_first={self.is_loading_first}, loading={self.is_loading_more}, "
            f"generation={self.generation})>"
        )


class MessageStore:
    """Ordered, deduplicated message timeline of one conversation."""

    def __init__(self):
        self.conversation_id: Optional[str] = None
        self.cursor = PaginationCursor()
        self._messages: list[Message] = []
        self._ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __repr__(self):
        return f"<MessageStore(conversation={self.conversation_id}, messages={len(self._messages)})>"

    @property
    def messages(self) -> list[Message]:
        """Snapshot of the timeline, oldest first."""
        return list(self._messages)

    def ids(self) -> list[str]:
        return [message.id for message in self._messages]

    def contains(self, message_id: str) -> bool:
        return message_id in self._ids

    def reset(self, conversation_id: Optional[str]) -> None:
        """
        Empty the timeline and bind it to a (new) conversation.

        Args:
            conversation_id: Conversation the timeline now belongs to
        """
        self.conversation_id = conversation_id
        self._messages = []
        self._ids = set()
        self.cursor.reset()

    def insert_if_absent(self, message: Message) -> bool:
        """
        Insert one message unless its id is already loaded.

        Args:
            message: Message to insert

        Returns:
            bool: True if the message was inserted
        """
        if message.id in self._ids:
            return False
        # Right-most position among equal timestamps keeps arrival order stable
        insort(self._messages, message, key=_created_at)
        self._ids.add(message.id)
        return True

    def merge(self, messages: Iterable[Message]) -> int:
        """
        Merge a batch of messages (first page, older page or late arrivals).

        Args:
            messages: Messages in any order, possibly overlapping the timeline

        Returns:
            int: Number of messages actually added
        """
        fresh: list[Message] = []
        for message in messages:
            if message.id in self._ids:
                continue
            self._ids.add(message.id)
            fresh.append(message)

        if fresh:
            # Stable sort: older page entries stay ahead of loaded ones with the same timestamp
            self._messages = sorted(fresh + self._messages, key=_created_at)
        return len(fresh)

    def mark_all_read(self) -> None:
        """Flag every loaded message as read."""
        self._messages = [
            message if message.is_read else message.model_copy(update={"is_read": True})
            for message in self._messages
        ]

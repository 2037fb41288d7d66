"""Tests for the ordered, deduplicated message timeline."""

import pytest

from conftest import message_payload
from models.message_store import MessageStore
from schemas.chat import Message


def make(message_id: str, seconds: int, conversation_id: str = "c1") -> Message:
    return Message.model_validate(message_payload(message_id, conversation_id, seconds=seconds))


@pytest.fixture
def store() -> MessageStore:
    """Provide a timeline bound to conversation c1."""
    store = MessageStore()
    store.reset("c1")
    return store


class TestMerge:
    """Tests for MessageStore.merge."""

    def test_sorts_ascending(self, store: MessageStore) -> None:
        """A newest-first batch should end up oldest first."""
        added = store.merge([make("m3", 30), make("m1", 10), make("m2", 20)])

        assert added == 3
        assert store.ids() == ["m1", "m2", "m3"]

    def test_skips_known_ids(self, store: MessageStore) -> None:
        """Overlapping pages should not produce duplicates."""
        store.merge([make("m2", 20), make("m3", 30)])

        added = store.merge([make("m1", 10), make("m2", 20)])

        assert added == 1
        assert store.ids() == ["m1", "m2", "m3"]

    def test_older_page_goes_first_on_equal_timestamps(self, store: MessageStore) -> None:
        """Entries from an older page should precede loaded ones with the same timestamp."""
        store.merge([make("new", 10)])

        store.merge([make("old", 10)])

        assert store.ids() == ["old", "new"]


class TestInsertIfAbsent:
    """Tests for MessageStore.insert_if_absent."""

    def test_idempotent(self, store: MessageStore) -> None:
        """Inserting the same id twice should keep one entry."""
        assert store.insert_if_absent(make("m1", 10)) is True
        assert store.insert_if_absent(make("m1", 10)) is False
        assert len(store) == 1

    def test_late_arrivals_keep_order(self, store: MessageStore) -> None:
        """Late messages should land at their chronological position."""
        store.merge([make("m1", 10), make("m3", 30)])

        store.insert_if_absent(make("m2", 20))
        store.insert_if_absent(make("m4", 30))

        assert store.ids() == ["m1", "m2", "m3", "m4"]
        assert store.contains("m2")


class TestLifecycle:
    """Tests for reset, read marks and snapshots."""

    def test_reset_rebinds_and_bumps_generation(self, store: MessageStore) -> None:
        """reset() should clear messages, rewind the cursor and bump the generation."""
        store.merge([make("m1", 10)])
        store.cursor.next_page = 4
        store.cursor.has_more = False
        generation = store.cursor.generation

        store.reset("c2")

        assert store.conversation_id == "c2"
        assert len(store) == 0
        assert not store.contains("m1")
        assert store.cursor.next_page == 1
        assert store.cursor.has_more is True
        assert store.cursor.generation == generation + 1

    def test_mark_all_read(self, store: MessageStore) -> None:
        """mark_all_read() should flag every loaded message."""
        store.merge([make("m1", 10), make("m2", 20)])

        store.mark_all_read()

        assert all(message.is_read for message in store)

    def test_snapshot_is_detached(self, store: MessageStore) -> None:
        """Mutating a snapshot should not touch the timeline."""
        store.merge([make("m1", 10)])

        snapshot = store.messages
        snapshot.clear()

        assert store.ids() == ["m1"]

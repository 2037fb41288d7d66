"""
Chat synchronization service.

This module reconciles three sources of truth for the user's conversations
and the active conversation's timeline: REST reads, REST writes and
realtime pushes. It is the only writer of the conversation list and the
message timeline; everything else reads them.

Messages are never shown before the backend has assigned their id. A sent
message reaches the timeline through the realtime echo, or through the
fallback timer when the echo does not arrive in time. Both paths go through
the same insert-if-absent primitive, so their arrival order does not matter.
"""

import asyncio
from typing import Any, Optional

from pydantic import ValidationError

from config import settings
from models.conversation_list import ConversationList
from models.message_store import MessageStore
from modules.realtime.transport import RealtimeHandle, RealtimeManager, get_realtime_manager
from schemas.chat import (
    AttachmentUpload,
    Conversation,
    Message,
    SendMessageHint,
    TypingEvent,
    TypingPayload,
)
from schemas.events import RealtimeEvent
from utils.api_client import ApiError, ChatApiClient, UpgradeRequiredError, get_api_client
from utils.logging import get_logger, log_chat_event

logger = get_logger("chat.service")

# Error value the UI maps to an upsell flow instead of a plain error toast
UPGRADE_REQUIRED = "UPGRADE_REQUIRED"

CORE_EVENTS = (
    RealtimeEvent.NEW_MESSAGE,
    RealtimeEvent.JOINED_CONVERSATION,
    RealtimeEvent.USER_TYPING,
    RealtimeEvent.MESSAGES_READ,
)


class ChatSyncService:
    """
    Service owning the client-side chat state.

    Public attributes are meant to be read by the UI:
    conversations, current_conversation, messages, is_loading,
    is_sending, error and typing_users.
    """

    def __init__(
        self,
        user_id: str,
        api_client: Optional[ChatApiClient] = None,
        realtime: Optional[RealtimeManager] = None,
        page_size: int = None,
        fallback_delay: float = None,
    ):
        """
        Initialize the service.

        Args:
            user_id: Signed-in user id
            api_client: REST client (defaults to the global one)
            realtime: Realtime manager (defaults to the global one)
            page_size: History page size (defaults to config)
            fallback_delay: Seconds before a sent message is inserted without its echo
        """
        self.user_id = user_id
        self.api = api_client or get_api_client()
        self.realtime = realtime or get_realtime_manager()
        self.page_size = page_size or settings.message_page_size
        self.fallback_delay = settings.fallback_insert_delay if fallback_delay is None else fallback_delay
        self.placeholder = settings.attachment_placeholder

        self.conversations = ConversationList()
        self.current_conversation: Optional[Conversation] = None
        self.messages = MessageStore()
        self.is_loading = False
        self.is_sending = False
        self.error: Optional[str] = None
        self.typing_users: set[str] = set()

        self._fallback_tasks: dict[str, set[asyncio.Task]] = {}

    @property
    def current_conversation_id(self) -> Optional[str]:
        return self.current_conversation.id if self.current_conversation else None

    @property
    def has_more_messages(self) -> bool:
        return self.messages.cursor.has_more

    @property
    def is_loading_more(self) -> bool:
        return self.messages.cursor.is_loading_more

    @property
    def current_page(self) -> int:
        """Next history page to request."""
        return self.messages.cursor.next_page

    def clear_error(self) -> None:
        self.error = None

    # Realtime wiring

    async def init_realtime_listeners(self) -> RealtimeHandle:
        """
        Attach the service's listeners to the realtime handle.

        Initializes the handle if none exists yet, and reconnects one whose
        earlier connect failed. Listeners are attached once per handle;
        calling this again is a no-op until the handle is replaced
        (logout/login), which resets the guard with it.

        Returns:
            RealtimeHandle: The handle the listeners live on
        """
        handle = self.realtime.get_handle()
        if handle is None or not handle.connected:
            handle = await self.realtime.initialize(self.user_id)

        if handle.has_core_listeners:
            return handle
        handle.has_core_listeners = True

        for event in CORE_EVENTS:
            handle.off(event)

        handle.on(RealtimeEvent.NEW_MESSAGE, self._on_new_message)
        handle.on(RealtimeEvent.JOINED_CONVERSATION, self._on_joined_conversation)
        handle.on(RealtimeEvent.USER_TYPING, self._on_user_typing)
        handle.on(RealtimeEvent.MESSAGES_READ, self._on_messages_read)

        logger.info(f"Realtime listeners installed for user {self.user_id}")
        return handle

    async def _emit(self, event: RealtimeEvent, payload: Any) -> bool:
        handle = self.realtime.get_handle()
        if handle is None:
            logger.debug(f"No realtime handle, skipping '{event}'")
            return False
        return await handle.emit(event, payload)

    # Conversations

    async def list_conversations(self) -> None:
        """Refresh the conversation list from the backend (replace semantics)."""
        self.is_loading = True
        self.error = None

        try:
            conversations = await self.api.get_conversations()
        except ApiError as e:
            logger.error(f"Failed to fetch conversations: {e.message}")
            self.error = e.message
            self.is_loading = False
            return

        self.conversations.replace(conversations)
        self.is_loading = False
        log_chat_event("conversations_refreshed", count=len(self.conversations))

    async def create_conversation(self, participant_ids: list[str], job_id: str = None) -> Conversation:
        """
        Create (or find) a conversation and make it the active one.

        Args:
            participant_ids: Participant user ids
            job_id: Related job posting (optional)

        Returns:
            Conversation: The active conversation

        Raises:
            UpgradeRequiredError: If messaging needs a subscription upgrade
            ApiError: On any other failure
        """
        try:
            conversation = await self.api.create_conversation(participant_ids, job_id)
        except ApiError as e:
            logger.error(f"Failed to create conversation: {e.message}")
            if e.is_upgrade_required:
                self.error = UPGRADE_REQUIRED
                raise UpgradeRequiredError(e.message, status_code=e.status_code) from e
            self.error = e.message
            raise

        existing = self.conversations.get(conversation.id)
        if existing is not None:
            # Lost a race with a list refresh or a duplicate create
            self.current_conversation = existing
            log_chat_event("conversation_reused", conversation_id=conversation.id)
            return existing

        self.conversations.prepend(conversation)
        self.current_conversation = conversation
        log_chat_event("conversation_created", conversation_id=conversation.id)
        return conversation

    async def select_conversation(self, conversation_id: str) -> None:
        """
        Make a conversation active: join its room, load its history, mark it read.

        Args:
            conversation_id: Conversation id (must already be in the list)
        """
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            logger.warning(f"Conversation {conversation_id} not in list, ignoring selection")
            return

        previous_id = self.current_conversation_id
        if previous_id != conversation_id:
            self._cancel_fallbacks(previous_id)
            self.typing_users.clear()

        if not conversation.is_resolved:
            conversation = await self._resolve_participants(conversation)

        self.current_conversation = conversation

        await self._emit(RealtimeEvent.JOIN_CONVERSATION, conversation_id)
        await self.load_messages(conversation_id, page=1, reset=True)
        await self.mark_conversation_as_read(conversation_id)

    async def _resolve_participants(self, conversation: Conversation) -> Conversation:
        """Refetch a conversation whose participants are bare ids."""
        try:
            fresh = await self.api.get_conversation(conversation.id)
        except ApiError as e:
            logger.warning(f"Could not populate participants of {conversation.id}: {e.message}")
            return conversation

        self.conversations.update(fresh)
        log_chat_event("participants_resolved", conversation_id=conversation.id)
        return fresh

    async def mark_conversation_as_read(self, conversation_id: str) -> bool:
        """
        Mark a conversation read. Failures are logged, never surfaced.

        Returns:
            bool: True if the backend accepted the call
        """
        try:
            await self.api.mark_conversation_read(conversation_id)
        except ApiError as e:
            logger.warning(f"Failed to mark conversation {conversation_id} as read: {e.message}")
            return False

        self.conversations.mark_read(conversation_id)
        if self.current_conversation_id == conversation_id:
            self.current_conversation = self.current_conversation.model_copy(update={"unread_count": 0})
        return True

    # Messages

    async def load_messages(self, conversation_id: str, page: int = 1, reset: bool = True) -> None:
        """
        Fetch one history page into the timeline.

        A reset rebinds the timeline to the conversation and loads its newest
        page. Otherwise an older page is merged in front of the loaded
        messages; overlapping pagination calls are ignored.

        Args:
            conversation_id: Conversation id
            page: Page to fetch (1 = newest)
            reset: Replace the timeline instead of extending it
        """
        cursor = self.messages.cursor

        if reset:
            self.messages.reset(conversation_id)
            cursor.is_loading_first = True
            self.is_loading = True
            self.error = None
        else:
            if cursor.is_loading_first or cursor.is_loading_more:
                logger.debug(f"Page load already running for {conversation_id}")
                return
            if self.messages.conversation_id != conversation_id:
                logger.warning(f"Cannot paginate {conversation_id}, timeline belongs to {self.messages.conversation_id}")
                return
            cursor.is_loading_more = True

        generation = cursor.generation

        try:
            batch = await self.api.get_messages(conversation_id, page=page, limit=self.page_size)
        except ApiError as e:
            logger.error(f"Failed to fetch messages of {conversation_id} (page {page}): {e.message}")
            if cursor.generation == generation:
                self.error = e.message
                self.is_loading = False
                cursor.is_loading_first = False
                cursor.is_loading_more = False
            return

        if cursor.generation != generation:
            log_chat_event("stale_page_dropped", conversation_id=conversation_id, page=page)
            return

        added = self.messages.merge(batch)
        if reset:
            cursor.next_page = page + 1
            cursor.is_loading_first = False
            self.is_loading = False
        else:
            cursor.next_page += 1
            cursor.is_loading_more = False
        cursor.has_more = len(batch) >= self.page_size

        log_chat_event(
            "page_loaded",
            conversation_id=conversation_id,
            page=page,
            fetched=len(batch),
            added=added,
            has_more=cursor.has_more,
        )

    async def load_more_messages(self) -> None:
        """Load the next older page of the active conversation, if there is one."""
        cursor = self.messages.cursor
        if (
            self.current_conversation is None
            or not cursor.has_more
            or cursor.is_loading_first
            or cursor.is_loading_more
        ):
            return
        await self.load_messages(self.current_conversation.id, cursor.next_page, reset=False)

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        attachment: Optional[AttachmentUpload] = None,
    ) -> Optional[Message]:
        """
        Send a message through the REST API.

        The stored message is not inserted here. The realtime echo inserts
        it, and a fallback timer inserts it if the echo has not arrived
        after fallback_delay seconds.

        Args:
            conversation_id: Conversation id
            content: Message text
            attachment: File to upload (optional)

        Returns:
            The stored message, or None when nothing was sent
        """
        if not (content or "").strip() and attachment is None:
            return None

        self.is_sending = True
        self.error = None

        try:
            message = await self.api.send_message(conversation_id, content or "", attachment)
        except ApiError as e:
            logger.error(f"Failed to send message to {conversation_id}: {e.message}")
            self.is_sending = False
            self.error = UPGRADE_REQUIRED if e.is_upgrade_required else e.message
            return None

        self.is_sending = False

        hint = SendMessageHint(
            conversation_id=conversation_id,
            sender_id=message.sender.id,
            content=message.content,
        )
        await self._emit(RealtimeEvent.SEND_MESSAGE, hint.model_dump(by_alias=True))
        self._schedule_fallback(message)

        self.conversations.patch_preview(conversation_id, message.preview(self.placeholder))
        log_chat_event("message_sent", conversation_id=conversation_id, message_id=message.id)
        return message

    async def set_typing(self, conversation_id: str, is_typing: bool) -> bool:
        """Tell the other participants whether the user is typing."""
        payload = TypingPayload(conversation_id=conversation_id, user_id=self.user_id, is_typing=is_typing)
        return await self._emit(RealtimeEvent.TYPING, payload.model_dump(by_alias=True))

    def _insert_if_absent(self, message: Message, source: str) -> bool:
        """Insert a message into the active timeline unless it is already there."""
        if self.messages.conversation_id != message.conversation_id:
            return False

        inserted = self.messages.insert_if_absent(message)
        log_chat_event(
            "message_inserted" if inserted else "duplicate_skipped",
            conversation_id=message.conversation_id,
            message_id=message.id,
            source=source,
        )
        return inserted

    # Fallback timers

    def _schedule_fallback(self, message: Message) -> None:
        conversation_id = message.conversation_id
        task = asyncio.create_task(
            self._fallback_insert(message),
            name=f"fallback_insert_{message.id}",
        )
        self._fallback_tasks.setdefault(conversation_id, set()).add(task)
        task.add_done_callback(lambda done: self._forget_fallback(conversation_id, done))

    async def _fallback_insert(self, message: Message) -> None:
        await asyncio.sleep(self.fallback_delay)
        if self._insert_if_absent(message, source="fallback"):
            logger.info(f"Realtime echo for {message.id} missing, inserted from REST response")

    def _forget_fallback(self, conversation_id: str, task: asyncio.Task) -> None:
        tasks = self._fallback_tasks.get(conversation_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._fallback_tasks[conversation_id]

    def _cancel_fallbacks(self, conversation_id: Optional[str]) -> None:
        if conversation_id is None:
            return
        for task in self._fallback_tasks.pop(conversation_id, set()):
            task.cancel()

    @property
    def pending_fallbacks(self) -> int:
        return sum(len(tasks) for tasks in self._fallback_tasks.values())

    # Realtime listeners

    async def _on_new_message(self, payload: Any) -> None:
        try:
            message = Message.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Ignoring malformed realtime message: {e}")
            return

        try:
            self._apply_pushed_message(message)
        except Exception as e:
            logger.error(f"Error processing realtime message {message.id}: {e}", exc_info=True)

    def _apply_pushed_message(self, message: Message) -> None:
        conversation_id = message.conversation_id
        listed = self.conversations.get(conversation_id)
        seen_before = (
            listed is not None
            and listed.last_message is not None
            and listed.last_message.id == message.id
        )

        self.conversations.patch_preview(conversation_id, message.preview(self.placeholder))

        if conversation_id != self.current_conversation_id:
            if not seen_before and message.sender.id != self.user_id:
                self.conversations.increment_unread(conversation_id)
            return

        self._insert_if_absent(message, source="realtime")

    async def _on_joined_conversation(self, payload: Any = None) -> None:
        conversation_id = payload.get("conversationId") if isinstance(payload, dict) else None
        log_chat_event("conversation_joined", conversation_id=conversation_id)

    async def _on_user_typing(self, payload: Any) -> None:
        try:
            event = TypingEvent.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Ignoring malformed typing event: {e}")
            return

        if event.user_id == self.user_id:
            return
        # The payload names no conversation and rooms are never left, so a
        # partner from an earlier room can still reach us
        if self.current_conversation is None or event.user_id not in self.current_conversation.participant_ids:
            return
        if event.is_typing:
            self.typing_users.add(event.user_id)
        else:
            self.typing_users.discard(event.user_id)

    async def _on_messages_read(self, payload: Any) -> None:
        conversation_id = payload.get("conversationId") if isinstance(payload, dict) else payload
        if conversation_id and conversation_id == self.messages.conversation_id:
            self.messages.mark_all_read()
            log_chat_event("messages_read", conversation_id=conversation_id)

    # Lifecycle

    async def close(self) -> None:
        """Cancel pending fallback timers and detach from the realtime handle."""
        for conversation_id in list(self._fallback_tasks):
            self._cancel_fallbacks(conversation_id)

        handle = self.realtime.get_handle()
        if handle is not None and handle.has_core_listeners:
            for event in CORE_EVENTS:
                handle.off(event)
            handle.has_core_listeners = False

        self.typing_users.clear()


# Global service instance
_chat_service: Optional[ChatSyncService] = None


def get_chat_service(user_id: str) -> ChatSyncService:
    """
    Get or create the global chat service for a user.

    A different user id replaces the previous instance (without closing it;
    use cleanup_chat_service() on logout).

    Returns:
        ChatSyncService: Service instance
    """
    global _chat_service
    if _chat_service is None or _chat_service.user_id != user_id:
        _chat_service = ChatSyncService(user_id)
    return _chat_service


async def cleanup_chat_service() -> None:
    """Close and forget the global chat service."""
    global _chat_service
    if _chat_service:
        await _chat_service.close()
        _chat_service = None

"""
REST client for the chat backend.

This module wraps the backend's chat endpoints behind typed async calls.
Every reply is the envelope {"success": bool, "data": ...}; the client
unwraps it, validates the payload into schema models and turns any
failure into an ApiError.
"""

import time
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ValidationError

from config import settings
from schemas.chat import AttachmentUpload, Conversation, Message
from utils.logging import get_logger, log_api_request

logger = get_logger("api.client")


class ApiError(RuntimeError):
    """
    A failed call to the chat backend.

    Attributes:
        message: Human-readable message (backend `message` field or a default)
        status_code: HTTP status, None when no response was received
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_upgrade_required(self) -> bool:
        """True when the backend refused the call for lack of a messaging subscription."""
        return (
            self.status_code == 403
            and settings.upgrade_required_phrase in self.message
        )


class UpgradeRequiredError(ApiError):
    """Messaging is restricted until the user upgrades their subscription."""


def _error_message(payload: Any, default: str) -> str:
    """Pick the backend's error message out of a JSON error body."""
    if not isinstance(payload, dict):
        return default
    message = payload.get("message") or payload.get("detail")
    if isinstance(message, list):
        message = "; ".join(str(item) for item in message)
    if isinstance(message, str) and message:
        return message
    return default


class ChatApiClient:
    """
    Async wrapper for the chat REST endpoints.

    The underlying httpx client is created lazily and reused for every
    call until close() is awaited.
    """

    def __init__(
        self,
        base_url: str = None,
        access_token: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: REST base URL (defaults to config)
            access_token: Bearer token sent with every request
            timeout: Request timeout in seconds (defaults to config)
            transport: Custom httpx transport (used by tests)
        """
        self.base_url = base_url or settings.api_base_url
        self.timeout = timeout or settings.request_timeout
        self._access_token = access_token
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def set_access_token(self, access_token: Optional[str]) -> None:
        """Swap the bearer token used for subsequent requests."""
        self._access_token = access_token
        if self._client is not None:
            if access_token:
                self._client.headers["Authorization"] = f"Bearer {access_token}"
            else:
                self._client.headers.pop("Authorization", None)

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(self, method: str, path: str, default_error: str, **kwargs) -> Any:
        """
        Perform a request and unwrap the response envelope.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            default_error: Message used when the backend gives none
            **kwargs: Passed through to httpx

        Returns:
            The envelope's `data` member

        Raises:
            ApiError: On transport errors, error statuses or unsuccessful envelopes
        """
        client = self._get_client()
        started = time.monotonic()

        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            log_api_request(method, path, None, time.monotonic() - started, error=str(e))
            raise ApiError(default_error) from e

        log_api_request(method, path, response.status_code, time.monotonic() - started)

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = None

        if response.is_error:
            raise ApiError(_error_message(payload, default_error), status_code=response.status_code)

        if not isinstance(payload, dict) or not payload.get("success"):
            logger.warning(f"Unsuccessful response for {method} {path}: {payload}")
            raise ApiError(default_error, status_code=response.status_code)

        return payload.get("data")

    @staticmethod
    def _parse(model: type[BaseModel], data: Any, default_error: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed {model.__name__} payload: {e}")
            raise ApiError(default_error) from e

    def _parse_list(self, model: type[BaseModel], data: Any, default_error: str) -> list:
        if not isinstance(data, list):
            raise ApiError(default_error)
        return [self._parse(model, item, default_error) for item in data]

    async def get_conversations(self) -> list[Conversation]:
        """
        List the current user's conversations.

        Returns:
            Conversations in backend order (most recently updated first)
        """
        error = "Failed to fetch conversations"
        data = await self._request("GET", "/chat/conversations", error)
        return self._parse_list(Conversation, data, error)

    async def create_conversation(self, participants: list[str], job_id: str = None) -> Conversation:
        """
        Create a conversation, or get the existing one for these participants.

        Args:
            participants: Participant user ids
            job_id: Job posting the conversation relates to (optional)

        Returns:
            Conversation: The created or existing conversation
        """
        error = "Failed to create conversation"
        body: dict[str, Any] = {"participants": participants}
        if job_id:
            body["jobId"] = job_id
        data = await self._request("POST", "/chat/conversations", error, json=body)
        return self._parse(Conversation, data, error)

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Fetch one conversation with populated participants."""
        error = "Failed to fetch conversation"
        data = await self._request("GET", f"/chat/conversations/{conversation_id}", error)
        return self._parse(Conversation, data, error)

    async def get_messages(self, conversation_id: str, page: int = 1, limit: int = None) -> list[Message]:
        """
        Fetch one page of a conversation's history.

        Args:
            conversation_id: Conversation id
            page: 1-based page number, page 1 holds the newest messages
            limit: Page size (defaults to config)

        Returns:
            Messages of that page, in whatever order the backend returned them
        """
        error = "Failed to fetch messages"
        params = {"page": page, "limit": limit or settings.message_page_size}
        data = await self._request(
            "GET", f"/chat/conversations/{conversation_id}/messages", error, params=params
        )
        return self._parse_list(Message, data, error)

    async def send_message(
        self,
        conversation_id: str,
        content: str,
        attachment: Optional[AttachmentUpload] = None,
    ) -> Message:
        """
        Post a message to a conversation.

        Args:
            conversation_id: Conversation id
            content: Message text (may be empty when an attachment is given)
            attachment: File to upload as multipart (optional)

        Returns:
            Message: The stored message with its server-assigned id
        """
        error = "Failed to send message"
        kwargs: dict[str, Any] = {"data": {"content": content}}
        if attachment is not None:
            kwargs["files"] = {
                "attachment": (attachment.filename, attachment.content, attachment.mimetype)
            }
        data = await self._request(
            "POST", f"/chat/conversations/{conversation_id}/messages", error, **kwargs
        )
        return self._parse(Message, data, error)

    async def mark_conversation_read(self, conversation_id: str) -> None:
        """Mark every message of a conversation as read for the current user."""
        await self._request(
            "PATCH",
            f"/chat/conversations/{conversation_id}/read",
            "Failed to mark conversation as read",
        )


# Global client instance
_api_client: Optional[ChatApiClient] = None


def get_api_client() -> ChatApiClient:
    """
    Get or create the global API client instance.

    Returns:
        ChatApiClient: Client instance
    """
    global _api_client
    if _api_client is None:
        _api_client = ChatApiClient()
    return _api_client


async def cleanup_api_client() -> None:
    """Close and forget the global API client."""
    global _api_client
    if _api_client:
        await _api_client.close()
        _api_client = None

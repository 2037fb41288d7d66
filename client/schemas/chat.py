"""
Chat schemas for conversations, messages and realtime payloads.

IMPORTANT: the backend speaks camelCase JSON with Mongo-style `_id` keys.
Use Field(alias=...) for the wire names while keeping Pythonic snake_case
in code.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _id_of(value: Any) -> Optional[str]:
    """Extract an id from a bare id string or a populated document."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        raw = value.get("_id", value.get("id"))
        return str(raw) if raw is not None else None
    return None


class UserSummary(BaseModel):
    """Public profile of a conversation participant or message sender."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    full_name: str = Field(default="", alias="fullName")
    avatar: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


class JobReference(BaseModel):
    """Job posting a conversation was started from (informational only)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    title: Optional[str] = None
    company_name: Optional[str] = Field(default=None, alias="companyName")

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"_id": data}
        if isinstance(data, dict) and isinstance(data.get("company"), dict):
            data = dict(data)
            data.setdefault("companyName", data["company"].get("name"))
        return data


class Attachment(BaseModel):
    """File attached to a message, as stored by the backend."""

    filename: str
    url: str
    mimetype: str
    size: int


class AttachmentUpload(BaseModel):
    """Local file to upload alongside a message."""

    filename: str
    content: bytes
    mimetype: str = "application/octet-stream"


class LastMessagePreview(BaseModel):
    """Denormalized snapshot of a conversation's latest message."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    content: str = ""
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        # Unpopulated references arrive as a bare message id
        if isinstance(data, str):
            return {"_id": data}
        if isinstance(data, dict) and isinstance(data.get("sender"), dict):
            data = dict(data)
            data.setdefault("senderName", data["sender"].get("fullName"))
        if isinstance(data, dict) and data.get("content") is None:
            data = {**data, "content": ""}
        return data


class UnresolvedParticipants(BaseModel):
    """Participants known only by id."""
    kind: Literal["unresolved"] = "unresolved"
    ids: list[str] = Field(default_factory=list)


class ResolvedParticipants(BaseModel):
    """Participants with populated profiles."""
    kind: Literal["resolved"] = "resolved"
    users: list[UserSummary] = Field(default_factory=list)


Participants = Annotated[
    Union[UnresolvedParticipants, ResolvedParticipants],
    Field(discriminator="kind"),
]


def participants_from_wire(raw: list) -> dict:
    """
    Classify a raw participant list into the tagged variant.

    The list counts as resolved only when every entry is a populated
    profile (an object carrying `fullName`). Anything else keeps just the
    ids so the conversation can be upgraded with a refetch later.
    """
    populated = bool(raw) and all(
        isinstance(entry, dict) and entry.get("fullName") for entry in raw
    )
    if populated:
        return {"kind": "resolved", "users": raw}
    ids = [pid for pid in (_id_of(entry) for entry in raw) if pid]
    return {"kind": "unresolved", "ids": ids}


class Conversation(BaseModel):
    """Conversation summary as listed by the backend."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    participants: Participants = Field(default_factory=UnresolvedParticipants)
    job: Optional[JobReference] = None
    last_message: Optional[LastMessagePreview] = Field(default=None, alias="lastMessage")
    unread_count: int = Field(default=0, ge=0, alias="unreadCount")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("participants", mode="before")
    @classmethod
    def _classify_participants(cls, value: Any) -> Any:
        if isinstance(value, list):
            return participants_from_wire(value)
        return value

    @field_validator("unread_count", mode="before")
    @classmethod
    def _unread_default(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.participants, ResolvedParticipants)

    @property
    def participant_ids(self) -> list[str]:
        if isinstance(self.participants, ResolvedParticipants):
            return [user.id for user in self.participants.users]
        return list(self.participants.ids)


class Message(BaseModel):
    """A single message in a conversation timeline."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    conversation_id: str = Field(alias="conversation")
    sender: UserSummary
    content: str = ""
    attachment: Optional[Attachment] = None
    is_read: bool = Field(default=False, alias="isRead")
    created_at: datetime = Field(alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("conversation_id", mode="before")
    @classmethod
    def _conversation_ref(cls, value: Any) -> Any:
        return _id_of(value) or value

    @field_validator("sender", mode="before")
    @classmethod
    def _sender_ref(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"_id": value}
        return value

    @field_validator("content", mode="before")
    @classmethod
    def _content_default(cls, value: Any) -> Any:
        return "" if value is None else value

    def preview(self, placeholder: str) -> LastMessagePreview:
        """Build the conversation-list preview for this message."""
        return LastMessagePreview(
            id=self.id,
            content=self.content or placeholder,
            sender_name=self.sender.full_name,
            created_at=self.created_at,
        )


class SendMessageHint(BaseModel):
    """Payload of the outgoing `sendMessage` realtime event."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    sender_id: str = Field(alias="senderId")
    content: str


class TypingPayload(BaseModel):
    """Payload of the outgoing `typing` realtime event."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    user_id: str = Field(alias="userId")
    is_typing: bool = Field(alias="isTyping")


class TypingEvent(BaseModel):
    """Payload of the incoming `userTyping` realtime event."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    is_typing: bool = Field(alias="isTyping")

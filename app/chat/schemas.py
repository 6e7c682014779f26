from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _non_empty(content: str) -> str:
    content = content.strip()
    if not content:
        raise ValueError("Message content cannot be empty.")
    return content


# Messages
class MessageData(CamelModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    sender_name: str
    content: str
    read: bool
    created_at: datetime


class GetMessagesResponseModel(CamelModel):
    messages: List[MessageData]


# Send message
class SendMessageModel(CamelModel):
    conversation_id: Optional[UUID] = None
    recipient_id: Optional[UUID] = None
    content: str

    @field_validator("content")
    @classmethod
    def validate_content(cls, content: str) -> str:
        return _non_empty(content)

    @model_validator(mode="after")
    def require_target(self):
        if self.conversation_id is None and self.recipient_id is None:
            raise ValueError("Either conversation_id or recipient_id is required.")
        return self


class SendMessageResponseModel(CamelModel):
    message: MessageData
    conversation_id: UUID


# Conversations
class ConversationData(CamelModel):
    id: UUID
    participant_ids: List[UUID]
    participant_names: List[str]
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    other_participant_id: Optional[UUID] = None
    other_participant_name: Optional[str] = None
    unread_count: int = 0


class GetConversationsResponseModel(CamelModel):
    conversations: List[ConversationData]


class StartConversationModel(CamelModel):
    recipient_id: UUID
    recipient_name: str
    initial_message: Optional[str] = None

    @field_validator("recipient_name")
    @classmethod
    def validate_recipient_name(cls, recipient_name: str) -> str:
        return recipient_name.strip() or "Farmer"

    @field_validator("initial_message")
    @classmethod
    def validate_initial_message(cls, initial_message: Optional[str]) -> Optional[str]:
        if initial_message is None:
            return None
        return initial_message.strip() or None


class StartConversationResponseModel(CamelModel):
    id: UUID
    participant_ids: List[UUID]
    participant_names: List[str]
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None


class DeleteConversationResponseModel(CamelModel):
    conversation_deleted: bool


# Unread tracking
class UnreadCountResponseModel(CamelModel):
    unread_count: int


class ConversationUnreadCountResponseModel(CamelModel):
    conversation_id: str
    unread_count: int


class MarkAsReadResponseModel(CamelModel):
    marked_read: int
    unread_count: int

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enums.listing_status import ListingStatus
from app.schemas.user_schema import UserInfoCard

MAX_MESSAGE_LENGTH = 2000


class MessageCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    message_text: str = Field(max_length=MAX_MESSAGE_LENGTH)

    @field_validator("message_text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message cannot be empty.")
        return value


class MessageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    conversation_id: int
    sender_id: int
    message_text: str
    is_read: bool
    is_flagged: bool
    created_at: datetime


class MessageSendResult(BaseModel):
    allowed: bool
    message: MessageRead | None = None
    flagged_reason: str | None = None
    warning_message: str | None = None


class ConversationListingInfo(BaseModel):
    id: int
    title: str
    price: Decimal
    status: ListingStatus


class ConversationRead(BaseModel):
    id: int
    listing: ConversationListingInfo
    buyer: UserInfoCard
    seller: UserInfoCard
    created_at: datetime
    updated_at: datetime | None = None


class ConversationSummary(ConversationRead):
    last_message: MessageRead | None = None
    unread_count: int = 0


class MarkReadResult(BaseModel):
    conversation_id: int
    marked_read: int

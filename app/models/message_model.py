from datetime import datetime, timezone

from sqlalchemy import TIMESTAMP, Column
from sqlmodel import Field, SQLModel


# Messages are immutable once created except for the read flag.
class Message(SQLModel, table=True):
    __tablename__ = "resale_messages"

    id: int = Field(default=None, primary_key=True)

    conversation_id: int = Field(
        foreign_key="resale_conversations.id", index=True, ondelete="CASCADE"
    )
    sender_id: int = Field(foreign_key="users.id")

    message_text: str = Field(max_length=2000)
    is_read: bool = Field(default=False)
    is_flagged: bool = Field(default=False)
    flagged_reason: str | None = Field(default=None, max_length=255)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )

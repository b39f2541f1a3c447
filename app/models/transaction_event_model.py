from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import TIMESTAMP, Column
from sqlmodel import Field, Relationship, SQLModel

from app.models.enums.transaction_event_type import TransactionEventType

if TYPE_CHECKING:
    from .transaction_model import Transaction


class TransactionEvent(SQLModel, table=True):
    __tablename__ = "resale_transaction_events"

    id: int = Field(default=None, primary_key=True)
    transaction_id: int = Field(
        foreign_key="resale_transactions.id", index=True, ondelete="CASCADE"
    )
    event_type: TransactionEventType
    notes: str | None = Field(default=None, max_length=1000)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )

    transaction: Optional["Transaction"] = Relationship(back_populates="events")

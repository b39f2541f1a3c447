from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import TIMESTAMP, Column, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from .listing_model import Listing
    from .user_model import User


class Conversation(SQLModel, table=True):
    __tablename__ = "resale_conversations"

    id: int = Field(default=None, primary_key=True)

    listing_id: int = Field(foreign_key="resale_listings.id", index=True)
    buyer_id: int = Field(foreign_key="users.id", index=True)
    seller_id: int = Field(foreign_key="users.id", index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )
    # bumped on every new message, used to order the inbox
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )

    # Relationships
    listing: Optional["Listing"] = Relationship()
    buyer: Optional["User"] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Conversation.buyer_id]"},
    )
    seller: Optional["User"] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Conversation.seller_id]"},
    )

    __table_args__ = (
        UniqueConstraint(
            "listing_id", "buyer_id", "seller_id", name="uix_listing_buyer_seller"
        ),
    )

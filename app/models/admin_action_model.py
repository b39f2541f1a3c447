from datetime import datetime, timezone

from sqlalchemy import TIMESTAMP, Column
from sqlmodel import Field, SQLModel

from app.models.enums.moderation_action import ModerationAction


class AdminAction(SQLModel, table=True):
    __tablename__ = "resale_admin_actions"

    id: int = Field(default=None, primary_key=True)
    listing_id: int = Field(foreign_key="resale_listings.id", index=True)
    admin_id: int | None = Field(foreign_key="users.id", ondelete="SET NULL")
    action_type: ModerationAction
    notes: str | None = Field(default=None, max_length=1000)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums.listing_status import ListingStatus
from app.models.enums.moderation_action import ModerationAction


class ModerationResult(BaseModel):
    approved: bool
    issues: list[str] = Field(default_factory=list)

    @property
    def notes(self) -> str | None:
        return "; ".join(self.issues) if self.issues else None


class ListingRejectRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    reason: str | None = Field(default=None, max_length=1000)


class AdminActionResponse(BaseModel):
    id: int
    listing_id: int
    admin_id: int | None
    action_type: ModerationAction
    notes: str | None
    listing_status: ListingStatus
    created_at: datetime

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ReviewCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    rating: int = Field(ge=1, le=5)
    text: str = Field(default="", max_length=500)


class ReviewerInfo(BaseModel):
    id: int
    firstname: str
    lastname: str


class ReviewResponse(BaseModel):
    id: int
    transaction_id: int
    rating: int
    text: str
    reviewer: ReviewerInfo | None
    created_at: datetime


class UserReviewsSummary(BaseModel):
    user_id: int
    average_rating: float | None
    total_reviews: int
    reviews: list[ReviewResponse]

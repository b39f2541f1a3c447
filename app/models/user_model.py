from datetime import datetime, timezone
from typing import TYPE_CHECKING, List

from sqlalchemy import TIMESTAMP, Column
from sqlmodel import Field, Relationship

from app.schemas.user_schema import UserBase

from .favorite_listing_model import FavoriteListing

if TYPE_CHECKING:
    from .firebase_cloud_token_model import FirebaseCloudToken
    from .listing_model import Listing
    from .user_review_model import UserReview


class User(UserBase, table=True):
    __tablename__ = "users"

    id: int = Field(default=None, primary_key=True)
    is_admin: bool = Field(default=False)
    # number of completed resale transactions as seller
    total_sales: int = Field(default=0, ge=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )

    # Relationships
    reviews_written: List["UserReview"] = Relationship(
        back_populates="reviewer",
        sa_relationship_kwargs={"foreign_keys": "[UserReview.reviewer_id]"},
    )

    reviews_received: List["UserReview"] = Relationship(
        back_populates="reviewee",
        sa_relationship_kwargs={"foreign_keys": "[UserReview.reviewee_id]"},
    )

    firebase_cloud_tokens: List["FirebaseCloudToken"] = Relationship(
        back_populates="user",
        # This configures SQLModel to automatically delete the related
        # records (FirebaseCloudToken) when the initial one is deleted (a User).
        cascade_delete=True,
    )

    favorite_listings: List["Listing"] = Relationship(
        back_populates="favorite_by", link_model=FavoriteListing
    )

    posted_listings: List["Listing"] = Relationship(back_populates="seller")

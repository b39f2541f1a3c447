from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import TIMESTAMP, Column, func
from sqlmodel import Field, Relationship

from app.models.enums.listing_status import ListingStatus
from app.schemas.listing_schema import ListingBase

from .favorite_listing_model import FavoriteListing

if TYPE_CHECKING:
    from .listing_image import ListingImage
    from .user_model import User


class Listing(ListingBase, table=True):
    __tablename__ = "resale_listings"
    id: int = Field(default=None, primary_key=True)
    seller_id: int = Field(foreign_key="users.id", index=True)

    # new listings wait for moderation before they are visible to buyers
    status: ListingStatus = Field(default=ListingStatus.PENDING, index=True)
    moderation_notes: str | None = Field(default=None, max_length=1000)
    views: int = Field(default=0, ge=0)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )
    updated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(
            TIMESTAMP(timezone=True),
            nullable=True,
            server_default=func.now(),
            onupdate=lambda: datetime.now(timezone.utc),
        ),
    )

    # Relationships
    images: List["ListingImage"] = Relationship(
        back_populates="listing",
        sa_relationship_kwargs={"order_by": "ListingImage.display_order"},
        cascade_delete=True,
    )

    favorite_by: List["User"] = Relationship(
        back_populates="favorite_listings", link_model=FavoriteListing
    )

    seller: Optional["User"] = Relationship(back_populates="posted_listings")

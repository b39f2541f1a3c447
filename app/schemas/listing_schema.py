from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, model_validator
from sqlmodel import Field, SQLModel

from app.models.enums.item_condition import ItemCondition
from app.models.enums.listing_category import ListingCategory
from app.models.enums.listing_status import ListingStatus
from app.models.enums.pickup_option import PickupOption
from app.schemas.user_schema import UserInfoCard


# Basic schema for listing data shared by the table model and the forms
class ListingBase(SQLModel):
    model_config = ConfigDict(extra="forbid")
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)
    price: Decimal = Field(max_digits=10, decimal_places=2, ge=0)
    category: ListingCategory
    condition: ItemCondition
    campus: int = Field(ge=1, le=25)
    pickup_option: PickupOption = Field(default=PickupOption.PICKUP)
    delivery_fee: Decimal = Field(
        default=Decimal("0"), max_digits=10, decimal_places=2, ge=0
    )
    is_exchange: bool = Field(default=False)
    exchange_with: str | None = Field(default=None, max_length=500)


# schema for listing creation
class ListingCreate(ListingBase):
    # storage paths of images already uploaded to the private bucket
    image_paths: list[str] = Field(min_length=1)


# schema for listing update, only the provided fields are changed
class ListingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    price: Decimal | None = Field(
        default=None, max_digits=10, decimal_places=2, ge=0
    )
    category: ListingCategory | None = None
    condition: ItemCondition | None = None
    campus: int | None = Field(default=None, ge=1, le=25)
    pickup_option: PickupOption | None = None
    delivery_fee: Decimal | None = Field(
        default=None, max_digits=10, decimal_places=2, ge=0
    )
    is_exchange: bool | None = None
    exchange_with: str | None = Field(default=None, max_length=500)
    image_paths: list[str] | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def reject_nulls(self):
        # only exchange_with can be cleared, the other columns are NOT NULL
        nulls = sorted(
            name
            for name in self.model_fields_set
            if name != "exchange_with" and getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self


# Schema for displaying listing data in browse cards
class ListingCard(ListingBase):
    id: int
    status: ListingStatus
    # user specific information
    liked: bool
    seller: UserInfoCard
    image_url: str | None = None
    created_at: datetime
    description: str | None = Field(default=None, exclude=True)


# Schema for the listing detail page
class ListingCardDetails(ListingBase):
    id: int
    status: ListingStatus
    liked: bool
    seller: UserInfoCard
    image_urls: list[str]
    views: int
    moderation_notes: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


# Schema for displaying users own listing data in Profile
class ListingCardProfile(ListingBase):
    id: int
    status: ListingStatus
    moderation_notes: str | None = None
    views: int
    image_url: str | None = None
    created_at: datetime


class ListingQueryParameters(BaseModel):
    category: ListingCategory | None = None
    condition: ItemCondition | None = None
    campus: int | None = Field(default=None, ge=1, le=25)
    min_price: Decimal | None = Field(default=None, ge=0)
    max_price: Decimal | None = Field(default=None, ge=0)
    search: str | None = Field(default=None, max_length=255)

    sort_by: Literal["created_at", "price"] = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    limit: int = Field(default=20, ge=1)
    offset: int = Field(default=0, ge=0)

from typing import TYPE_CHECKING

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.listing_model import Listing


class ListingImageBase(SQLModel):
    # path of the object in the private storage bucket
    storage_path: str = Field(max_length=1024)
    display_order: int = Field(default=0, ge=0)


class ListingImage(ListingImageBase, table=True):
    __tablename__ = "resale_listing_images"

    id: int = Field(default=None, primary_key=True)
    listing_id: int = Field(foreign_key="resale_listings.id", ondelete="CASCADE")

    listing: "Listing" = Relationship(back_populates="images")

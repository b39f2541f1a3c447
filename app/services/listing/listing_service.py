from datetime import timedelta
from typing import List, Literal, Optional

from fastapi import Depends, HTTPException, status
from firebase_admin import storage
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from app.api.dependencies import get_async_session
from app.core.config import config
from app.models.enums.listing_status import ListingStatus
from app.models.listing_image import ListingImage
from app.models.listing_model import Listing
from app.models.transaction_model import Transaction
from app.models.user_model import User
from app.services.transaction.state import OPEN_STATUSES

AllowedListingDependencies = Literal["favorite_by", "seller", "images"]
DependenciesList = Optional[List[AllowedListingDependencies]]

# statuses in which the listing is visible to everybody
PUBLIC_STATUSES = (ListingStatus.ACTIVE, ListingStatus.SOLD)


def generate_signed_url(image_path: str) -> str:
    bucket = storage.bucket(config.firebase_storage_bucket)
    blob = bucket.blob(image_path)
    signed_url = blob.generate_signed_url(
        version="v4",
        expiration=timedelta(seconds=config.signed_url_expiration_seconds),
        method="GET",
    )
    return signed_url


class ListingService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_listing_by_id(
        self,
        listing_id: int,
        dependencies: DependenciesList = None,
    ) -> Listing | None:
        query = select(Listing).where(Listing.id == listing_id)
        if dependencies:
            query = query.options(
                *[selectinload(getattr(Listing, dep)) for dep in dependencies]
            )

        result = await self.session.execute(query)
        return result.scalars().one_or_none()

    async def get_visible_listing(
        self,
        listing_id: int,
        viewer: User,
        dependencies: DependenciesList = None,
    ) -> Listing:
        """
        Returns the listing if the viewer is allowed to see it.

        Pending and removed listings are visible only to their seller and to
        administrators, everybody else gets 404 as if the listing did not exist.
        """
        listing = await self.get_listing_by_id(listing_id, dependencies=dependencies)
        if listing is None or not self.can_view(listing, viewer):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Listing with ID {listing_id} not found.",
            )
        return listing

    async def get_own_listing(
        self,
        listing_id: int,
        seller: User,
        dependencies: DependenciesList = None,
    ) -> Listing:
        listing = await self.get_listing_by_id(listing_id, dependencies=dependencies)
        if listing is None or listing.status == ListingStatus.REMOVED:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Listing with ID {listing_id} not found.",
            )
        if listing.seller_id != seller.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the seller can modify this listing.",
            )
        return listing

    @staticmethod
    def can_view(listing: Listing, viewer: User) -> bool:
        if listing.status in PUBLIC_STATUSES:
            return True
        if viewer.is_admin:
            return True
        return listing.seller_id == viewer.id and listing.status != ListingStatus.REMOVED

    async def has_open_transaction(self, listing_id: int) -> bool:
        result = await self.session.execute(
            select(func.count(Transaction.id)).where(
                Transaction.listing_id == listing_id,
                Transaction.status.in_(OPEN_STATUSES),
            )
        )
        return result.scalar_one() > 0

    @staticmethod
    def validate_image_paths(image_paths: list[str]) -> list[str]:
        paths = [path.strip() for path in image_paths if path and path.strip()]
        if not paths:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Please add at least one image.",
            )
        if len(paths) > config.max_listing_images:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Maximum {config.max_listing_images} images allowed.",
            )
        return paths

    @staticmethod
    def validate_campus(campus: int | None) -> None:
        if campus is not None and campus > config.max_campus_number:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Campus must be between 1 and {config.max_campus_number}.",
            )

    @staticmethod
    def build_images(image_paths: list[str]) -> list[ListingImage]:
        return [
            ListingImage(storage_path=path, display_order=index)
            for index, path in enumerate(image_paths)
        ]

    # generate presigned urls for listing images
    def get_presigned_urls(self, images: list[ListingImage]) -> list[str]:
        return [generate_signed_url(image.storage_path) for image in images]

    def get_cover_image_url(self, images: list[ListingImage]) -> str | None:
        if not images:
            return None
        return generate_signed_url(images[0].storage_path)

    @classmethod
    async def get_dependency(
        cls,
        session: AsyncSession = Depends(get_async_session),
    ) -> "ListingService":
        return cls(session)

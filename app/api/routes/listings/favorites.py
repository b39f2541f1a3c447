from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import desc, select

from app.api.dependencies import get_async_session
from app.models.enums.listing_status import ListingStatus
from app.models.listing_model import Listing
from app.models.user_model import User
from app.schemas.listing_schema import ListingCard, ListingCardDetails
from app.services.listing.listing_service import ListingService
from app.services.user.user_service import UserService

from .base import build_listing_card, build_listing_details

router = APIRouter()


# get favorite listings
@router.get(
    "/favorites/my",
    response_model=List[ListingCard],
    summary="Get favorite listings of current user",
    description="Fetch all favorite listings of the current user. Removed listings are left out.",
)
async def get_favorite_listings(
    *,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user()

    query = (
        select(Listing)
        .options(
            selectinload(Listing.seller),
            selectinload(Listing.images),
        )
        .where(
            Listing.favorite_by.any(User.id == current_user.id),
            Listing.status != ListingStatus.REMOVED,
        )
        .order_by(desc(Listing.created_at), desc(Listing.id))
    )
    result = await session.execute(query)
    listings: list[Listing] = result.scalars().all()

    # a favourite listing can go back to moderation, it is hidden until approved
    listings = [
        listing
        for listing in listings
        if listing_service.can_view(listing, current_user)
    ]
    ratings = await user_service.get_seller_ratings(
        {listing.seller_id for listing in listings}
    )
    return [
        build_listing_card(
            listing,
            listing_service,
            liked=True,
            seller_rating=ratings.get(listing.seller_id),
        )
        for listing in listings
    ]


# add listing to favorites
@router.put(
    "/{listing_id}/favorite",
    response_model=ListingCardDetails,
    summary="Add a specific listing to users favorites",
    description="Updates users favorite_listings relationship. You must provide valid listing ID",
)
async def add_favorite(
    *,
    listing_id: int,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user(
        dependencies=["favorite_listings"]
    )
    # check that listing exists
    listing = await listing_service.get_visible_listing(
        listing_id, current_user, dependencies=["seller", "images"]
    )

    # check if listing is already in favorites
    if any(fav.id == listing.id for fav in current_user.favorite_listings):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Listing with ID {listing_id} is already in your favorites.",
        )

    current_user.favorite_listings.append(listing)

    # add user to DB session
    session.add(current_user)
    await session.commit()

    seller_rating = await user_service.get_seller_rating(listing.seller_id)
    return build_listing_details(
        listing, listing_service, current_user, seller_rating
    )


# remove listing from favorites
@router.delete(
    "/{listing_id}/favorite",
    response_model=ListingCardDetails,
    summary="Remove a specific listing from users favorites",
    description="Updates users favorite_listings relationship. You must provide valid listing ID",
)
async def remove_favorite(
    *,
    listing_id: int,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user(
        dependencies=["favorite_listings"]
    )
    listing = await listing_service.get_visible_listing(
        listing_id, current_user, dependencies=["seller", "images"]
    )

    # check that listing is not in favorites
    if not any(fav.id == listing.id for fav in current_user.favorite_listings):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Listing with ID {listing_id} is not in your favorites.",
        )

    current_user.favorite_listings.remove(listing)

    session.add(current_user)
    await session.commit()

    seller_rating = await user_service.get_seller_rating(listing.seller_id)
    return build_listing_details(
        listing, listing_service, current_user, seller_rating
    )

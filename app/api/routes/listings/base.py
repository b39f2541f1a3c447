import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import asc, desc, or_, select

from app.api.dependencies import get_async_session
from app.core.config import config
from app.models.enums.listing_status import ListingStatus
from app.models.listing_model import Listing
from app.models.user_model import User
from app.schemas.listing_schema import (
    ListingCard,
    ListingCardDetails,
    ListingCardProfile,
    ListingCreate,
    ListingQueryParameters,
    ListingUpdate,
)
from app.services.listing.listing_service import ListingService
from app.services.listing.moderation import apply_auto_moderation
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()

# changing any of these sends the listing through moderation again
MODERATED_FIELDS = {"title", "description", "price"}


def build_listing_details(
    listing: Listing,
    listing_service: ListingService,
    current_user: User,
    seller_rating: float | None,
) -> ListingCardDetails:
    return ListingCardDetails(
        id=listing.id,
        title=listing.title,
        description=listing.description,
        price=listing.price,
        category=listing.category,
        condition=listing.condition,
        campus=listing.campus,
        pickup_option=listing.pickup_option,
        delivery_fee=listing.delivery_fee,
        is_exchange=listing.is_exchange,
        exchange_with=listing.exchange_with,
        status=listing.status,
        liked=any(fav.id == listing.id for fav in current_user.favorite_listings),
        seller=UserService.to_info_card(listing.seller, seller_rating),
        image_urls=listing_service.get_presigned_urls(listing.images),
        views=listing.views,
        # moderation notes are meant only for the seller and admins
        moderation_notes=(
            listing.moderation_notes
            if current_user.is_admin or current_user.id == listing.seller_id
            else None
        ),
        created_at=listing.created_at,
        updated_at=listing.updated_at,
    )


def build_listing_card(
    listing: Listing,
    listing_service: ListingService,
    liked: bool,
    seller_rating: float | None,
) -> ListingCard:
    return ListingCard(
        id=listing.id,
        title=listing.title,
        price=listing.price,
        category=listing.category,
        condition=listing.condition,
        campus=listing.campus,
        pickup_option=listing.pickup_option,
        delivery_fee=listing.delivery_fee,
        is_exchange=listing.is_exchange,
        exchange_with=listing.exchange_with,
        status=listing.status,
        liked=liked,
        seller=UserService.to_info_card(listing.seller, seller_rating),
        image_url=listing_service.get_cover_image_url(listing.images),
        created_at=listing.created_at,
    )


@router.post(
    "/",
    response_model=ListingCardDetails,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new listing",
    description="Creates a listing of the current user. The listing is moderated automatically and stays pending when it needs a manual review.",
)
async def create_listing(
    *,
    new_listing_data: ListingCreate,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user(
        dependencies=["favorite_listings"]
    )

    image_paths = listing_service.validate_image_paths(new_listing_data.image_paths)
    listing_service.validate_campus(new_listing_data.campus)

    # create listing instance
    listing = Listing.model_validate(
        new_listing_data.model_dump(exclude={"image_paths"}),
        update={"seller_id": current_user.id, "status": ListingStatus.PENDING},
    )
    if not listing.is_exchange:
        listing.exchange_with = None
    listing.images = listing_service.build_images(image_paths)
    apply_auto_moderation(listing)

    # add listing to DB session
    session.add(listing)
    await session.commit()
    logger.info(
        "Listing %s created by user %s with status %s",
        listing.id,
        current_user.id,
        listing.status.value,
    )

    listing = await listing_service.get_listing_by_id(
        listing.id, dependencies=["seller", "images"]
    )
    seller_rating = await user_service.get_seller_rating(listing.seller_id)
    return build_listing_details(
        listing, listing_service, current_user, seller_rating
    )


# get current user's listings in profile/listings
@router.get(
    "/my-listings",
    response_model=List[ListingCardProfile],
    summary="Get current user's listings",
    description="Fetch all listings created by the current user except the removed ones.",
)
async def get_my_listings(
    *,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user()

    result = await session.execute(
        select(Listing)
        .where(Listing.seller_id == current_user.id)
        .where(Listing.status != ListingStatus.REMOVED)
        .options(selectinload(Listing.images))
        .order_by(desc(Listing.created_at), desc(Listing.id))
    )

    listings: list[Listing] = result.scalars().all()
    listing_result: list[ListingCardProfile] = []
    for listing in listings:
        listing_data = listing.model_dump(exclude={"seller_id", "updated_at"})
        # set title image
        listing_data["image_url"] = listing_service.get_cover_image_url(
            listing.images
        )
        listing_result.append(ListingCardProfile.model_validate(listing_data))

    return listing_result


# browse active listings with category, condition, campus, price and text filters
@router.get(
    "/",
    response_model=List[ListingCard],
    summary="Filter and list listings",
    description="Retrieve active listings by category, condition, campus, price range and search text.",
)
async def get_listings_by_params(
    *,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    params: Annotated[ListingQueryParameters, Depends()],
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user(
        dependencies=["favorite_listings"]
    )

    if (
        params.min_price is not None
        and params.max_price is not None
        and params.min_price > params.max_price
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="min_price cannot be greater than max_price.",
        )
    listing_service.validate_campus(params.campus)

    query = (
        select(Listing)
        .options(selectinload(Listing.seller), selectinload(Listing.images))
        .where(Listing.status == ListingStatus.ACTIVE)  # only active listings
    )

    # Filtering:
    if params.category is not None:
        query = query.where(Listing.category == params.category)
    if params.condition is not None:
        query = query.where(Listing.condition == params.condition)
    if params.campus is not None:
        query = query.where(Listing.campus == params.campus)
    if params.min_price is not None:
        query = query.where(Listing.price >= params.min_price)
    if params.max_price is not None:
        query = query.where(Listing.price <= params.max_price)
    if params.search:
        query = query.where(
            or_(
                Listing.title.ilike(f"%{params.search}%"),
                Listing.description.ilike(f"%{params.search}%"),
            )
        )

    # Sorting:
    sort_columns = {
        "created_at": Listing.created_at,
        "price": Listing.price,
    }
    order = asc if params.sort_order == "asc" else desc
    query = query.order_by(order(sort_columns[params.sort_by]), order(Listing.id))

    # Pagination:
    limit = min(params.limit, config.max_page_size)
    query = query.limit(limit).offset(params.offset)

    result = await session.execute(query)
    listings: list[Listing] = result.scalars().all()

    ratings = await user_service.get_seller_ratings(
        {listing.seller_id for listing in listings}
    )
    favorite_ids = {fav.id for fav in current_user.favorite_listings}
    return [
        build_listing_card(
            listing,
            listing_service,
            liked=listing.id in favorite_ids,
            seller_rating=ratings.get(listing.seller_id),
        )
        for listing in listings
    ]


@router.get(
    "/{listing_id}",
    response_model=ListingCardDetails,
    summary="Get listing detail",
    description="Pending listings are visible only to their seller and administrators.",
)
async def get_listing(
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

    if listing.seller_id != current_user.id:
        # counted in the database so that parallel views are not lost
        await session.execute(
            update(Listing)
            .where(Listing.id == listing.id)
            .values(views=Listing.views + 1, updated_at=Listing.updated_at)
        )
        await session.commit()
        await session.refresh(listing, attribute_names=["views"])

    seller_rating = await user_service.get_seller_rating(listing.seller_id)
    return build_listing_details(
        listing, listing_service, current_user, seller_rating
    )


@router.patch(
    "/{listing_id}",
    response_model=ListingCardDetails,
    summary="Update a listing",
    description="Only the seller can edit a pending or active listing. Content changes are moderated again.",
)
async def update_listing(
    *,
    listing_id: int,
    update_data: ListingUpdate,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user(
        dependencies=["favorite_listings"]
    )
    listing = await listing_service.get_own_listing(
        listing_id, current_user, dependencies=["seller", "images"]
    )
    if listing.status not in (ListingStatus.PENDING, ListingStatus.ACTIVE):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only pending or active listings can be edited.",
        )
    if await listing_service.has_open_transaction(listing.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The listing has an ongoing transaction.",
        )

    changes = update_data.model_dump(exclude_unset=True)
    listing_service.validate_campus(changes.get("campus"))
    image_paths = changes.pop("image_paths", None)
    if image_paths is not None:
        image_paths = listing_service.validate_image_paths(image_paths)
        listing.images = listing_service.build_images(image_paths)

    listing.sqlmodel_update(changes)
    if not listing.is_exchange:
        listing.exchange_with = None

    # a listing held for review stays pending until it passes the checks
    if MODERATED_FIELDS & changes.keys() or listing.status == ListingStatus.PENDING:
        apply_auto_moderation(listing)

    session.add(listing)
    await session.commit()

    listing = await listing_service.get_listing_by_id(
        listing.id, dependencies=["seller", "images"]
    )
    seller_rating = await user_service.get_seller_rating(listing.seller_id)
    return build_listing_details(
        listing, listing_service, current_user, seller_rating
    )


@router.put(
    "/{listing_id}/sold",
    response_model=ListingCardProfile,
    summary="Mark a listing as sold",
    description="Used by sellers who sold the item outside of the escrow checkout.",
)
async def mark_listing_sold(
    *,
    listing_id: int,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user()
    listing = await listing_service.get_own_listing(
        listing_id, current_user, dependencies=["images"]
    )
    if listing.status != ListingStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only active listings can be marked as sold.",
        )
    if await listing_service.has_open_transaction(listing.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The listing has an ongoing transaction.",
        )

    listing.status = ListingStatus.SOLD
    session.add(listing)
    await session.commit()

    listing_data = listing.model_dump(exclude={"seller_id", "updated_at"})
    listing_data["image_url"] = listing_service.get_cover_image_url(listing.images)
    return ListingCardProfile.model_validate(listing_data)


@router.delete(
    "/{listing_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a listing",
    description="Soft deletes the listing, it disappears from browsing, favourites and the seller's list.",
)
async def remove_listing(
    *,
    listing_id: int,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    current_user = await user_service.get_current_user()
    listing = await listing_service.get_own_listing(listing_id, current_user)
    if await listing_service.has_open_transaction(listing.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The listing has an ongoing transaction.",
        )

    listing.status = ListingStatus.REMOVED
    session.add(listing)
    await session.commit()
    logger.info("Listing %s removed by its seller", listing.id)

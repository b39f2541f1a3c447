import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import asc, select

from app.api.dependencies import get_async_session
from app.api.routes.listings.base import build_listing_details
from app.models.admin_action_model import AdminAction
from app.models.enums.listing_status import ListingStatus
from app.models.enums.moderation_action import ModerationAction
from app.models.listing_model import Listing
from app.schemas.listing_schema import ListingCardDetails
from app.schemas.moderation_schema import AdminActionResponse, ListingRejectRequest
from app.services.listing.listing_service import ListingService
from app.services.notifications.push_service import notify_user
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

DEFAULT_REJECT_NOTES = "Rejected by admin"


def to_action_response(action: AdminAction, listing: Listing) -> AdminActionResponse:
    return AdminActionResponse(
        id=action.id,
        listing_id=action.listing_id,
        admin_id=action.admin_id,
        action_type=action.action_type,
        notes=action.notes,
        listing_status=listing.status,
        created_at=action.created_at,
    )


@router.get(
    "/listings/pending",
    response_model=List[ListingCardDetails],
    summary="Get the moderation queue",
    description="Listings the automatic moderation could not approve, oldest first.",
)
async def get_pending_listings(
    *,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    admin = await user_service.get_current_admin(dependencies=["favorite_listings"])

    result = await session.execute(
        select(Listing)
        .where(Listing.status == ListingStatus.PENDING)
        .options(selectinload(Listing.images), selectinload(Listing.seller))
        .order_by(asc(Listing.created_at), asc(Listing.id))
    )
    listings = result.scalars().all()

    ratings = await user_service.get_seller_ratings(
        {listing.seller_id for listing in listings}
    )
    return [
        build_listing_details(
            listing, listing_service, admin, ratings.get(listing.seller_id)
        )
        for listing in listings
    ]


async def get_listing_for_moderation(
    listing_id: int,
    listing_service: ListingService,
    allowed_statuses: tuple[ListingStatus, ...] = (ListingStatus.PENDING,),
) -> Listing:
    listing = await listing_service.get_listing_by_id(listing_id)
    if listing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing with ID {listing_id} not found.",
        )
    if listing.status not in allowed_statuses:
        allowed = " or ".join(s.value for s in allowed_statuses)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Listing is {listing.status.value}, only {allowed} listings can be moderated.",
        )
    return listing


@router.post(
    "/listings/{listing_id}/approve",
    response_model=AdminActionResponse,
    summary="Approve a pending listing",
)
async def approve_listing(
    *,
    listing_id: int,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    admin = await user_service.get_current_admin()
    listing = await get_listing_for_moderation(listing_id, listing_service)

    listing.status = ListingStatus.ACTIVE
    listing.moderation_notes = None
    action = AdminAction(
        listing_id=listing.id,
        admin_id=admin.id,
        action_type=ModerationAction.APPROVE,
    )
    session.add_all([listing, action])
    await session.commit()
    logger.info("Listing %s approved by admin %s", listing.id, admin.id)

    return to_action_response(action, listing)


@router.post(
    "/listings/{listing_id}/reject",
    response_model=AdminActionResponse,
    summary="Reject a listing",
    description="Removes a pending or active listing and notifies the seller with the reason.",
)
async def reject_listing(
    *,
    listing_id: int,
    reject_request: Optional[ListingRejectRequest] = None,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
):
    admin = await user_service.get_current_admin()
    listing = await get_listing_for_moderation(
        listing_id,
        listing_service,
        allowed_statuses=(ListingStatus.PENDING, ListingStatus.ACTIVE),
    )
    if await listing_service.has_open_transaction(listing.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The listing has an ongoing transaction.",
        )

    notes = (reject_request.reason or "").strip() if reject_request else ""
    notes = notes or DEFAULT_REJECT_NOTES
    listing.status = ListingStatus.REMOVED
    listing.moderation_notes = notes
    action = AdminAction(
        listing_id=listing.id,
        admin_id=admin.id,
        action_type=ModerationAction.REJECT,
        notes=notes,
    )
    session.add_all([listing, action])
    await session.commit()
    logger.info("Listing %s rejected by admin %s: %s", listing.id, admin.id, notes)

    await notify_user(
        session,
        listing.seller_id,
        "Listing rejected",
        f"{listing.title} was not approved: {notes}",
        {"listing_id": listing.id},
    )
    return to_action_response(action, listing)

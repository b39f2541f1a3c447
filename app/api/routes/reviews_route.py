import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import desc, select

from app.api.dependencies import get_async_session
from app.models.enums.transaction_status import TransactionStatus
from app.models.user_review_model import UserReview
from app.schemas.review_schema import (
    ReviewCreate,
    ReviewerInfo,
    ReviewResponse,
    UserReviewsSummary,
)
from app.services.transaction.transaction_service import TransactionService
from app.services.user.exceptions import UserNotFound
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reviews"])


def to_review_response(review: UserReview) -> ReviewResponse:
    return ReviewResponse(
        id=review.id,
        transaction_id=review.transaction_id,
        rating=review.rating,
        text=review.text,
        reviewer=(
            ReviewerInfo(
                id=review.reviewer.id,
                firstname=review.reviewer.firstname,
                lastname=review.reviewer.lastname,
            )
            if review.reviewer
            else None
        ),
        created_at=review.created_at,
    )


@router.post(
    "/transactions/{transaction_id}/review",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review the seller of a completed transaction",
    description="Only the buyer can review, and only once per transaction.",
)
async def create_review(
    *,
    transaction_id: int,
    review_data: ReviewCreate,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
):
    current_user = await user_service.get_current_user()
    transaction = await transaction_service.get_transaction_for_participant(
        transaction_id, current_user
    )
    transaction_service.require_buyer(transaction, current_user)

    if transaction.status != TransactionStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only completed transactions can be reviewed.",
        )
    if await transaction_service.get_reviewed_ids([transaction.id]):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This transaction has already been reviewed.",
        )

    review = UserReview(
        text=review_data.text.strip(),
        rating=review_data.rating,
        transaction_id=transaction.id,
        reviewer_id=current_user.id,
        reviewee_id=transaction.seller_id,
    )
    session.add(review)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This transaction has already been reviewed.",
        )
    logger.info(
        "User %s reviewed seller %s with %s stars",
        current_user.id,
        transaction.seller_id,
        review.rating,
    )

    review.reviewer = current_user
    return to_review_response(review)


@router.get(
    "/users/{user_id}/reviews",
    response_model=UserReviewsSummary,
    summary="Get reviews for a user",
    description="Fetch all reviews the user received as a seller, newest first, with the average rating.",
)
async def get_user_reviews(
    *,
    user_id: int,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
):
    try:
        user = await user_service.get_user_by_id(user_id)
    except UserNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="This user profile does not exist.",
        )

    result = await session.execute(
        select(UserReview)
        .where(UserReview.reviewee_id == user.id)
        .options(selectinload(UserReview.reviewer))
        .order_by(desc(UserReview.created_at), desc(UserReview.id))
    )
    reviews = result.scalars().all()

    return UserReviewsSummary(
        user_id=user.id,
        average_rating=await user_service.get_seller_rating(user.id),
        total_reviews=len(reviews),
        reviews=[to_review_response(review) for review in reviews],
    )

from typing import List, Literal, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from app.api.dependencies import get_async_session, get_user
from app.models.user_model import User
from app.models.user_review_model import UserReview
from app.schemas.user_schema import UserInfoCard
from app.services.user.exceptions import UserEmailNotFound, UserNotFound

AllowedUserDependencies = Literal[
    "reviews_written",
    "reviews_received",
    "firebase_cloud_tokens",
    "favorite_listings",
    "posted_listings",
]
DependenciesList = Optional[List[AllowedUserDependencies]]


class UserService:
    def __init__(self, session: AsyncSession, user_metadata: dict) -> None:
        self.session = session
        self.user_metadata = user_metadata
        if not self.user_metadata:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not authenticated.",
            )

    async def get_user_by_email(
        self, email: Optional[str] = None, dependencies: DependenciesList = None
    ) -> User:
        if not email:
            raise UserEmailNotFound("User email not found in metadata.")

        query = select(User).where(User.email == email.lower())
        dependencies = dependencies or []
        if dependencies:
            query = query.options(
                *[selectinload(getattr(User, dep)) for dep in dependencies]
            )
        result = await self.session.execute(query)
        db_user = result.scalars().one_or_none()
        if not db_user:
            raise UserNotFound("User not found in the database.")

        return db_user

    async def get_user_by_id(
        self, user_id: int, dependencies: DependenciesList = None
    ) -> User:
        query = select(User).where(User.id == user_id)
        dependencies = dependencies or []
        if dependencies:
            query = query.options(
                *[selectinload(getattr(User, dep)) for dep in dependencies]
            )

        result = await self.session.execute(query)
        db_user = result.scalars().one_or_none()
        if not db_user:
            raise UserNotFound("User not found in the database.")

        return db_user

    async def get_current_user(self, dependencies: DependenciesList = None) -> User:
        """
        Retrieve the user using the email stored in the request state.
        You can optionally provide a list of relationships to be preloaded.
        """
        try:
            return await self.get_user_by_email(
                self.user_metadata.get("email"), dependencies=dependencies
            )
        except UserEmailNotFound:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not authenticated.",
            )
        except UserNotFound:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found in the database. Register first.",
            )

    async def get_current_admin(self, dependencies: DependenciesList = None) -> User:
        current_user = await self.get_current_user(dependencies=dependencies)
        if not current_user.is_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Administrator privileges required.",
            )
        return current_user

    @staticmethod
    def get_seller_rating_subquery():
        """
        Returns a subquery that computes the average rating for each seller.
        Sellers are identified by the reviewee_id in the UserReview model.
        """
        rating_subquery = (
            select(
                UserReview.reviewee_id.label("seller_id"),
                func.avg(UserReview.rating).label("avg_rating"),
            )
            .group_by(UserReview.reviewee_id)
            .subquery()
        )
        return rating_subquery

    async def get_seller_rating(self, seller_id: int) -> float | None:
        """
        Calculates the seller's rating using the seller rating subquery.

        :param seller_id: The ID of the seller.
        :return: The average rating rounded to 2 decimal places or None if no reviews exist.
        """
        rating_subquery = self.get_seller_rating_subquery()
        stmt = select(rating_subquery.c.avg_rating).where(
            rating_subquery.c.seller_id == seller_id
        )

        result = await self.session.execute(stmt)
        avg_rating = result.scalar()
        return round(float(avg_rating), 2) if avg_rating is not None else None

    async def get_seller_ratings(self, seller_ids: set[int]) -> dict[int, float]:
        """Average ratings for several users at once, users without reviews are left out."""
        if not seller_ids:
            return {}
        rating_subquery = self.get_seller_rating_subquery()
        result = await self.session.execute(
            select(rating_subquery.c.seller_id, rating_subquery.c.avg_rating).where(
                rating_subquery.c.seller_id.in_(seller_ids)
            )
        )
        return {
            seller_id: round(float(avg_rating), 2)
            for seller_id, avg_rating in result.all()
        }

    @staticmethod
    def to_info_card(user: User, rating: float | None = None) -> UserInfoCard:
        return UserInfoCard(
            id=user.id,
            firstname=user.firstname,
            lastname=user.lastname,
            rating=rating,
        )

    @classmethod
    async def get_dependency(
        cls,
        session: AsyncSession = Depends(get_async_session),
        user: dict = Depends(get_user),
    ) -> "UserService":
        return cls(session, user)

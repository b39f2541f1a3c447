import logging
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from app.api.dependencies import get_async_session
from app.models.enums.transaction_event_type import TransactionEventType
from app.models.enums.transaction_status import TransactionStatus
from app.models.transaction_event_model import TransactionEvent
from app.models.transaction_model import Transaction
from app.models.user_model import User
from app.models.user_review_model import UserReview
from app.schemas.transaction_schema import (
    TransactionDetails,
    TransactionEventRead,
    TransactionListingInfo,
    TransactionRead,
)
from app.services.transaction.state import (
    InvalidTransactionTransition,
    ensure_transition,
)
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

# timestamp column set when a transaction enters the status
STATUS_TIMESTAMPS = {
    TransactionStatus.DELIVERED: "delivered_at",
    TransactionStatus.COMPLETED: "completed_at",
    TransactionStatus.CANCELLED: "cancelled_at",
}


class TransactionService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _transaction_query(self):
        return select(Transaction).options(
            selectinload(Transaction.listing),
            selectinload(Transaction.buyer),
            selectinload(Transaction.seller),
            selectinload(Transaction.events),
        )

    async def get_transaction(self, transaction_id: int) -> Transaction | None:
        result = await self.session.execute(
            self._transaction_query()
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().one_or_none()

    async def get_transaction_for_participant(
        self, transaction_id: int, user: User
    ) -> Transaction:
        transaction = await self.get_transaction(transaction_id)
        if transaction is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Transaction with ID {transaction_id} not found.",
            )
        if user.id not in (transaction.buyer_id, transaction.seller_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not a party of this transaction.",
            )
        return transaction

    async def get_user_transactions(
        self, user: User, role: str | None = None
    ) -> list[Transaction]:
        query = self._transaction_query()
        if role == "buyer":
            query = query.where(Transaction.buyer_id == user.id)
        elif role == "seller":
            query = query.where(Transaction.seller_id == user.id)
        else:
            query = query.where(
                or_(Transaction.buyer_id == user.id, Transaction.seller_id == user.id)
            )
        result = await self.session.execute(
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        )
        return result.scalars().all()

    async def get_reviewed_ids(self, transaction_ids: list[int]) -> set[int]:
        if not transaction_ids:
            return set()
        result = await self.session.execute(
            select(UserReview.transaction_id).where(
                UserReview.transaction_id.in_(transaction_ids)
            )
        )
        return set(result.scalars().all())

    @staticmethod
    def require_buyer(transaction: Transaction, user: User) -> None:
        if transaction.buyer_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the buyer can perform this action.",
            )

    @staticmethod
    def require_seller(transaction: Transaction, user: User) -> None:
        if transaction.seller_id != user.id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the seller can perform this action.",
            )

    @staticmethod
    def require_paid(transaction: Transaction) -> None:
        if not transaction.is_paid:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Payment for this transaction has not been received yet.",
            )

    def add_event(
        self,
        transaction: Transaction,
        event_type: TransactionEventType,
        notes: str | None = None,
    ) -> TransactionEvent:
        event = TransactionEvent(
            transaction_id=transaction.id,
            event_type=event_type,
            notes=notes,
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(event)
        return event

    def change_status(
        self, transaction: Transaction, target: TransactionStatus
    ) -> None:
        """
        Moves the transaction to the target status and stamps the matching timestamp.

        :raises HTTPException: 409 if the transition is not allowed.
        """
        try:
            ensure_transition(transaction.status, target)
        except InvalidTransactionTransition as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

        logger.info(
            "Transaction %s: %s -> %s",
            transaction.id,
            transaction.status.value,
            target.value,
        )
        transaction.status = target
        timestamp_field = STATUS_TIMESTAMPS.get(target)
        if timestamp_field:
            setattr(transaction, timestamp_field, datetime.now(timezone.utc))
        self.session.add(transaction)

    @staticmethod
    def to_read(
        transaction: Transaction,
        ratings: dict[int, float] | None = None,
        has_review: bool = False,
    ) -> TransactionRead:
        ratings = ratings or {}
        return TransactionRead(
            id=transaction.id,
            status=transaction.status,
            amount=transaction.amount,
            platform_fee=transaction.platform_fee,
            seller_amount=transaction.seller_amount,
            listing=TransactionListingInfo(
                id=transaction.listing.id, title=transaction.listing.title
            ),
            buyer=UserService.to_info_card(
                transaction.buyer, ratings.get(transaction.buyer_id)
            ),
            seller=UserService.to_info_card(
                transaction.seller, ratings.get(transaction.seller_id)
            ),
            is_paid=transaction.is_paid,
            razorpay_order_id=transaction.razorpay_order_id,
            created_at=transaction.created_at,
            paid_at=transaction.paid_at,
            delivered_at=transaction.delivered_at,
            completed_at=transaction.completed_at,
            cancelled_at=transaction.cancelled_at,
            has_review=has_review,
        )

    @classmethod
    def to_details(
        cls,
        transaction: Transaction,
        ratings: dict[int, float] | None = None,
        has_review: bool = False,
    ) -> TransactionDetails:
        return TransactionDetails(
            **cls.to_read(transaction, ratings, has_review).model_dump(),
            events=[
                TransactionEventRead.model_validate(event)
                for event in transaction.events
            ],
        )

    @classmethod
    async def get_dependency(
        cls,
        session: AsyncSession = Depends(get_async_session),
    ) -> "TransactionService":
        return cls(session)

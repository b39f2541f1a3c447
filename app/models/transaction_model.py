from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import TIMESTAMP, Column, Index
from sqlmodel import Field, Relationship, SQLModel

from app.models.enums.transaction_status import TransactionStatus
from app.services.transaction.state import OPEN_STATUSES

if TYPE_CHECKING:
    from .listing_model import Listing
    from .transaction_event_model import TransactionEvent
    from .user_model import User


class Transaction(SQLModel, table=True):
    __tablename__ = "resale_transactions"

    id: int = Field(default=None, primary_key=True)

    listing_id: int = Field(foreign_key="resale_listings.id", index=True)
    buyer_id: int = Field(foreign_key="users.id", index=True)
    seller_id: int = Field(foreign_key="users.id", index=True)

    amount: Decimal = Field(max_digits=10, decimal_places=2, ge=0)
    platform_fee: Decimal = Field(max_digits=10, decimal_places=2, ge=0)
    seller_amount: Decimal = Field(max_digits=10, decimal_places=2, ge=0)

    status: TransactionStatus = Field(default=TransactionStatus.ESCROW, index=True)

    razorpay_order_id: str | None = Field(default=None, max_length=255, index=True)
    razorpay_payment_id: str | None = Field(default=None, max_length=255)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(TIMESTAMP(timezone=True), nullable=False),
    )
    # None until the gateway confirms the payment
    paid_at: Optional[datetime] = Field(
        default=None, sa_column=Column(TIMESTAMP(timezone=True), nullable=True)
    )
    delivered_at: Optional[datetime] = Field(
        default=None, sa_column=Column(TIMESTAMP(timezone=True), nullable=True)
    )
    completed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(TIMESTAMP(timezone=True), nullable=True)
    )
    cancelled_at: Optional[datetime] = Field(
        default=None, sa_column=Column(TIMESTAMP(timezone=True), nullable=True)
    )

    # Relationships
    listing: Optional["Listing"] = Relationship()
    buyer: Optional["User"] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Transaction.buyer_id]"},
    )
    seller: Optional["User"] = Relationship(
        sa_relationship_kwargs={"foreign_keys": "[Transaction.seller_id]"},
    )
    events: List["TransactionEvent"] = Relationship(
        back_populates="transaction",
        sa_relationship_kwargs={
            "order_by": "[TransactionEvent.created_at, TransactionEvent.id]"
        },
        cascade_delete=True,
    )

    @property
    def is_paid(self) -> bool:
        return self.paid_at is not None


# a listing can be in at most one escrow or delivered transaction at a time
Index(
    "uq_resale_transactions_open_listing",
    Transaction.listing_id,
    unique=True,
    postgresql_where=Transaction.status.in_(OPEN_STATUSES),
    sqlite_where=Transaction.status.in_(OPEN_STATUSES),
)

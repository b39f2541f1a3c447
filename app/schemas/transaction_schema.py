from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums.transaction_event_type import TransactionEventType
from app.models.enums.transaction_status import TransactionStatus
from app.schemas.user_schema import UserInfoCard


class TransactionAmounts(BaseModel):
    amount: Decimal = Field(max_digits=10, decimal_places=2, ge=0)
    platform_fee: Decimal = Field(max_digits=10, decimal_places=2, ge=0)
    seller_amount: Decimal = Field(max_digits=10, decimal_places=2, ge=0)


class TransactionEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    event_type: TransactionEventType
    notes: str | None = None
    created_at: datetime


class TransactionListingInfo(BaseModel):
    id: int
    title: str


class TransactionRead(TransactionAmounts):
    id: int
    status: TransactionStatus
    listing: TransactionListingInfo
    buyer: UserInfoCard
    seller: UserInfoCard
    is_paid: bool
    razorpay_order_id: str | None = None
    created_at: datetime
    paid_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    has_review: bool = False


class TransactionDetails(TransactionRead):
    events: list[TransactionEventRead]


class PaymentOrder(BaseModel):
    id: str
    amount: int  # in paise
    currency: str
    receipt: str | None = None


class CheckoutResponse(BaseModel):
    transaction: TransactionRead
    order: PaymentOrder
    key_id: str


class PaymentVerificationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class TransactionCancelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    reason: str | None = Field(default=None, max_length=1000)

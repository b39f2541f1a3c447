import logging
from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_async_session
from app.core.config import config
from app.models.enums.listing_status import ListingStatus
from app.models.enums.transaction_event_type import TransactionEventType
from app.models.enums.transaction_status import TransactionStatus
from app.models.transaction_model import Transaction
from app.schemas.transaction_schema import (
    CheckoutResponse,
    PaymentVerificationRequest,
    TransactionCancelRequest,
    TransactionDetails,
    TransactionRead,
)
from app.services.listing.listing_service import ListingService
from app.services.notifications.push_service import notify_user
from app.services.payment.exceptions import (
    InvalidPaymentSignature,
    PaymentGatewayError,
)
from app.services.payment.razorpay_client import RazorpayClient, get_payment_gateway
from app.services.transaction.pricing import calculate_amounts
from app.services.transaction.transaction_service import TransactionService
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Transactions"])


async def build_transaction_details(
    transaction_id: int,
    user_service: UserService,
    transaction_service: TransactionService,
) -> TransactionDetails:
    transaction = await transaction_service.get_transaction(transaction_id)
    ratings = await user_service.get_seller_ratings(
        {transaction.buyer_id, transaction.seller_id}
    )
    reviewed = await transaction_service.get_reviewed_ids([transaction.id])
    return transaction_service.to_details(
        transaction, ratings, has_review=transaction.id in reviewed
    )


@router.post(
    "/listings/{listing_id}/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Buy a listing",
    description="Creates an escrow transaction and a payment order the client completes with the checkout widget.",
)
async def checkout(
    *,
    listing_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
    gateway: RazorpayClient = Depends(get_payment_gateway),
    session: AsyncSession = Depends(get_async_session),
):
    current_user = await user_service.get_current_user()
    listing = await listing_service.get_visible_listing(listing_id, current_user)

    if listing.seller_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot buy your own listing.",
        )
    if listing.status != ListingStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Listing is not available for purchase.",
        )
    if await listing_service.has_open_transaction(listing.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Listing already has a transaction in progress.",
        )

    amounts = calculate_amounts(listing.price, config.platform_fee_percent)
    transaction = Transaction(
        listing_id=listing.id,
        buyer_id=current_user.id,
        seller_id=listing.seller_id,
        **amounts.model_dump(),
    )
    session.add(transaction)
    try:
        await session.commit()
    except IntegrityError:
        # another checkout of the same listing committed first
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Listing already has a transaction in progress.",
        )

    try:
        order = await gateway.create_order(
            transaction.amount,
            receipt=f"resale_{transaction.id}",
            notes={
                "transaction_id": transaction.id,
                "listing_id": listing.id,
                "buyer_id": current_user.id,
                "seller_id": listing.seller_id,
            },
        )
    except PaymentGatewayError as e:
        transaction_service.change_status(transaction, TransactionStatus.CANCELLED)
        transaction_service.add_event(
            transaction, TransactionEventType.CANCELLED, notes=str(e)
        )
        await session.commit()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Could not create the payment order. Please try again.",
        )

    transaction.razorpay_order_id = order.id
    session.add(transaction)
    transaction_service.add_event(
        transaction, TransactionEventType.ORDER_CREATED, notes=order.id
    )
    await session.commit()
    logger.info(
        "Transaction %s created for listing %s with order %s",
        transaction.id,
        listing.id,
        order.id,
    )

    transaction = await transaction_service.get_transaction(transaction.id)
    ratings = await user_service.get_seller_ratings(
        {transaction.buyer_id, transaction.seller_id}
    )
    return CheckoutResponse(
        transaction=transaction_service.to_read(transaction, ratings),
        order=order,
        key_id=gateway.key_id,
    )


@router.post(
    "/transactions/{transaction_id}/verify-payment",
    response_model=TransactionDetails,
    summary="Verify the payment of a transaction",
    description="Checks the checkout signature and puts the paid amount in escrow.",
)
async def verify_payment(
    *,
    transaction_id: int,
    payment: PaymentVerificationRequest,
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
    gateway: RazorpayClient = Depends(get_payment_gateway),
    session: AsyncSession = Depends(get_async_session),
):
    current_user = await user_service.get_current_user()
    transaction = await transaction_service.get_transaction_for_participant(
        transaction_id, current_user
    )
    transaction_service.require_buyer(transaction, current_user)

    if transaction.is_paid:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Payment has already been verified.",
        )
    if payment.razorpay_order_id != transaction.razorpay_order_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order does not belong to this transaction.",
        )

    try:
        gateway.verify_signature(
            payment.razorpay_order_id,
            payment.razorpay_payment_id,
            payment.razorpay_signature,
        )
    except InvalidPaymentSignature as e:
        logger.warning("Payment verification failed for %s: %s", transaction.id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if transaction.status != TransactionStatus.ESCROW:
        if (
            transaction.status == TransactionStatus.CANCELLED
            and transaction.razorpay_payment_id is None
        ):
            # the order was still payable, the money has to be refunded by hand
            transaction.razorpay_payment_id = payment.razorpay_payment_id
            session.add(transaction)
            transaction_service.add_event(
                transaction,
                TransactionEventType.PAYMENT_AFTER_CANCELLATION,
                notes=payment.razorpay_payment_id,
            )
            await session.commit()
            logger.error(
                "Payment %s received for cancelled transaction %s, refund required",
                payment.razorpay_payment_id,
                transaction.id,
            )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Transaction is {transaction.status.value}.",
        )

    transaction.razorpay_payment_id = payment.razorpay_payment_id
    transaction.paid_at = datetime.now(timezone.utc)
    session.add(transaction)
    transaction_service.add_event(
        transaction,
        TransactionEventType.PAYMENT_RECEIVED,
        notes=payment.razorpay_payment_id,
    )
    await session.commit()
    logger.info("Transaction %s paid", transaction.id)

    await notify_user(
        session,
        transaction.seller_id,
        "Payment received",
        f"{transaction.listing.title} was paid. The money is held until the buyer confirms delivery.",
        {"transaction_id": transaction.id},
    )
    return await build_transaction_details(
        transaction.id, user_service, transaction_service
    )


@router.post(
    "/transactions/{transaction_id}/delivered",
    response_model=TransactionDetails,
    summary="Mark a transaction as delivered",
)
async def mark_delivered(
    *,
    transaction_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
    session: AsyncSession = Depends(get_async_session),
):
    current_user = await user_service.get_current_user()
    transaction = await transaction_service.get_transaction_for_participant(
        transaction_id, current_user
    )
    transaction_service.require_seller(transaction, current_user)
    transaction_service.require_paid(transaction)

    transaction_service.change_status(transaction, TransactionStatus.DELIVERED)
    transaction_service.add_event(transaction, TransactionEventType.DELIVERY_MARKED)
    await session.commit()

    await notify_user(
        session,
        transaction.buyer_id,
        "Item delivered",
        f"The seller marked {transaction.listing.title} as delivered. Please confirm once you have it.",
        {"transaction_id": transaction.id},
    )
    return await build_transaction_details(
        transaction.id, user_service, transaction_service
    )


@router.post(
    "/transactions/{transaction_id}/confirm-delivery",
    response_model=TransactionDetails,
    summary="Confirm delivery and release funds",
    description="The buyer confirms receiving the item, the listing is sold and the escrow is released to the seller.",
)
async def confirm_delivery(
    *,
    transaction_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
    session: AsyncSession = Depends(get_async_session),
):
    current_user = await user_service.get_current_user()
    transaction = await transaction_service.get_transaction_for_participant(
        transaction_id, current_user
    )
    transaction_service.require_buyer(transaction, current_user)
    transaction_service.require_paid(transaction)

    transaction_service.change_status(transaction, TransactionStatus.COMPLETED)
    transaction.listing.status = ListingStatus.SOLD
    transaction.seller.total_sales += 1
    session.add(transaction.listing)
    session.add(transaction.seller)
    transaction_service.add_event(
        transaction,
        TransactionEventType.DELIVERY_CONFIRMED,
        notes=f"Released {transaction.seller_amount} to the seller",
    )
    await session.commit()
    logger.info(
        "Funds of transaction %s released to seller %s",
        transaction.id,
        transaction.seller_id,
    )

    await notify_user(
        session,
        transaction.seller_id,
        "Funds released",
        f"The buyer confirmed delivery of {transaction.listing.title}.",
        {"transaction_id": transaction.id},
    )
    await notify_user(
        session,
        transaction.buyer_id,
        "Order completed",
        f"How was your purchase of {transaction.listing.title}? Leave a review for the seller.",
        {"transaction_id": transaction.id},
    )
    return await build_transaction_details(
        transaction.id, user_service, transaction_service
    )


@router.post(
    "/transactions/{transaction_id}/cancel",
    response_model=TransactionDetails,
    summary="Cancel a transaction",
    description="Either party can cancel while the transaction is in escrow. The listing stays available.",
)
async def cancel_transaction(
    *,
    transaction_id: int,
    cancel_request: Optional[TransactionCancelRequest] = None,
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
    session: AsyncSession = Depends(get_async_session),
):
    current_user = await user_service.get_current_user()
    transaction = await transaction_service.get_transaction_for_participant(
        transaction_id, current_user
    )

    transaction_service.change_status(transaction, TransactionStatus.CANCELLED)
    role = "buyer" if current_user.id == transaction.buyer_id else "seller"
    reason = cancel_request.reason if cancel_request else None
    transaction_service.add_event(
        transaction,
        TransactionEventType.CANCELLED,
        notes=f"Cancelled by {role}" + (f": {reason}" if reason else ""),
    )
    await session.commit()

    return await build_transaction_details(
        transaction.id, user_service, transaction_service
    )


@router.get(
    "/transactions/my",
    response_model=list[TransactionRead],
    summary="Get current user's transactions",
    description="Purchases and sales of the current user, newest first. Use `role` to get only one side.",
)
async def get_my_transactions(
    *,
    role: Optional[Literal["buyer", "seller"]] = None,
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
):
    current_user = await user_service.get_current_user()
    transactions = await transaction_service.get_user_transactions(current_user, role)

    reviewed = await transaction_service.get_reviewed_ids(
        [transaction.id for transaction in transactions]
    )
    ratings = await user_service.get_seller_ratings(
        {t.buyer_id for t in transactions} | {t.seller_id for t in transactions}
    )
    return [
        transaction_service.to_read(
            transaction, ratings, has_review=transaction.id in reviewed
        )
        for transaction in transactions
    ]


@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionDetails,
    summary="Get a transaction",
)
async def get_transaction(
    *,
    transaction_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    transaction_service: TransactionService = Depends(
        TransactionService.get_dependency
    ),
):
    current_user = await user_service.get_current_user()
    await transaction_service.get_transaction_for_participant(
        transaction_id, current_user
    )
    return await build_transaction_details(
        transaction_id, user_service, transaction_service
    )

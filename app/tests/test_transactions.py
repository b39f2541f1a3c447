from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi import status
from httpx import AsyncClient
from sqlmodel import select

from app.models.enums.listing_status import ListingStatus
from app.models.enums.transaction_status import TransactionStatus
from app.models.listing_model import Listing
from app.models.transaction_model import Transaction
from app.models.user_model import User
from app.schedulers.expire_unpaid_transactions import expire_unpaid_transactions
from app.services.listing.listing_service import ListingService
from app.services.payment.razorpay_client import compute_payment_signature
from app.services.transaction.pricing import calculate_amounts
from app.services.transaction.state import (
    InvalidTransactionTransition,
    can_transition,
    ensure_transition,
    is_terminal,
)
from app.tests.conftest import (
    TEST_KEY_ID,
    TEST_KEY_SECRET,
    TestSessionLocal,
    as_user,
    create_listing,
    create_user,
)


@pytest.fixture()
def notifications(monkeypatch) -> AsyncMock:
    notify = AsyncMock(return_value=0)
    monkeypatch.setattr("app.api.routes.transactions_route.notify_user", notify)
    return notify


@pytest.mark.parametrize(
    "price, fee, seller_amount",
    [
        ("500", "50.00", "450.00"),
        ("455", "46.00", "409.00"),
        ("125", "13.00", "112.00"),
        ("10.04", "1.00", "9.04"),
        ("1000000", "100000.00", "900000.00"),
    ],
)
def test_calculate_amounts(price, fee, seller_amount):
    amounts = calculate_amounts(Decimal(price), Decimal("10"))
    assert amounts.platform_fee == Decimal(fee)
    assert amounts.seller_amount == Decimal(seller_amount)
    assert amounts.platform_fee + amounts.seller_amount == amounts.amount


def test_transaction_state_machine():
    assert can_transition(TransactionStatus.ESCROW, TransactionStatus.DELIVERED)
    assert can_transition(TransactionStatus.ESCROW, TransactionStatus.COMPLETED)
    assert can_transition(TransactionStatus.ESCROW, TransactionStatus.CANCELLED)
    assert can_transition(TransactionStatus.DELIVERED, TransactionStatus.COMPLETED)
    assert not can_transition(TransactionStatus.DELIVERED, TransactionStatus.CANCELLED)
    assert not can_transition(TransactionStatus.DELIVERED, TransactionStatus.ESCROW)

    for terminal in (TransactionStatus.COMPLETED, TransactionStatus.CANCELLED):
        assert is_terminal(terminal)
        for target in TransactionStatus:
            assert not can_transition(terminal, target)

    with pytest.raises(InvalidTransactionTransition):
        ensure_transition(TransactionStatus.COMPLETED, TransactionStatus.CANCELLED)


async def checkout(client: AsyncClient, listing_id: int, buyer) -> dict:
    response = await client.post(
        f"/listings/{listing_id}/checkout", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    return response.json()


async def pay(client: AsyncClient, checkout_data: dict, buyer) -> dict:
    order_id = checkout_data["order"]["id"]
    response = await client.post(
        f"/transactions/{checkout_data['transaction']['id']}/verify-payment",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_test_1",
            "razorpay_signature": compute_payment_signature(
                order_id, "pay_test_1", TEST_KEY_SECRET
            ),
        },
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_200_OK, response.json()
    return response.json()


@pytest.mark.asyncio
async def test_checkout(async_client: AsyncClient, seller, buyer, razorpay):
    listing = await create_listing(seller, price=Decimal("455"))

    data = await checkout(async_client, listing.id, buyer)

    transaction = data["transaction"]
    assert transaction["status"] == TransactionStatus.ESCROW.value
    assert transaction["is_paid"] is False
    assert Decimal(transaction["amount"]) == Decimal("455")
    assert Decimal(transaction["platform_fee"]) == Decimal("46")
    assert Decimal(transaction["seller_amount"]) == Decimal("409")
    assert transaction["buyer"]["id"] == buyer.id
    assert transaction["seller"]["id"] == seller.id
    assert data["key_id"] == TEST_KEY_ID
    assert data["order"]["amount"] == 45500
    assert data["order"]["currency"] == "INR"
    assert data["order"]["receipt"] == f"resale_{transaction['id']}"
    assert transaction["razorpay_order_id"] == data["order"]["id"]
    assert len(razorpay.requests) == 1


@pytest.mark.asyncio
async def test_checkout_rules(async_client: AsyncClient, seller, buyer, razorpay):
    listing = await create_listing(seller)
    sold = await create_listing(seller, status=ListingStatus.SOLD)

    # own listing
    response = await async_client.post(f"/listings/{listing.id}/checkout")
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await async_client.post(
        f"/listings/{sold.id}/checkout", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    await checkout(async_client, listing.id, buyer)
    other_buyer = await create_user()
    response = await async_client.post(
        f"/listings/{listing.id}/checkout", headers=as_user(other_buyer)
    )
    assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_checkout_gateway_failure(
    async_client: AsyncClient, seller, buyer, razorpay
):
    listing = await create_listing(seller)
    razorpay.fail = True

    response = await async_client.post(
        f"/listings/{listing.id}/checkout", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_502_BAD_GATEWAY

    response = await async_client.get("/transactions/my", headers=as_user(buyer))
    assert [t["status"] for t in response.json()] == [
        TransactionStatus.CANCELLED.value
    ]

    # the failed attempt does not block the listing
    razorpay.fail = False
    await checkout(async_client, listing.id, buyer)


@pytest.mark.asyncio
async def test_verify_payment(
    async_client: AsyncClient, seller, buyer, razorpay, notifications
):
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)

    details = await pay(async_client, data, buyer)
    assert details["is_paid"] is True
    assert details["paid_at"] is not None
    assert details["status"] == TransactionStatus.ESCROW.value
    assert [event["event_type"] for event in details["events"]] == [
        "order_created",
        "payment_received",
    ]
    assert notifications.await_args.args[1] == seller.id

    response = await async_client.post(
        f"/transactions/{data['transaction']['id']}/verify-payment",
        json={
            "razorpay_order_id": data["order"]["id"],
            "razorpay_payment_id": "pay_test_1",
            "razorpay_signature": "whatever",
        },
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_verify_payment_rejects_bad_requests(
    async_client: AsyncClient, seller, buyer, razorpay
):
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)
    url = f"/transactions/{data['transaction']['id']}/verify-payment"
    order_id = data["order"]["id"]
    valid = {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": compute_payment_signature(
            order_id, "pay_1", TEST_KEY_SECRET
        ),
    }

    response = await async_client.post(
        url, json={**valid, "razorpay_signature": "0" * 64}, headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    response = await async_client.post(
        url, json={**valid, "razorpay_order_id": "order_other"}, headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    # only the buyer pays
    response = await async_client.post(url, json=valid)
    assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.asyncio
async def test_delivery_and_confirmation(
    async_client: AsyncClient, seller, buyer, razorpay, notifications
):
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)
    transaction_id = data["transaction"]["id"]

    # not paid yet
    response = await async_client.post(f"/transactions/{transaction_id}/delivered")
    assert response.status_code == status.HTTP_409_CONFLICT

    await pay(async_client, data, buyer)

    response = await async_client.post(
        f"/transactions/{transaction_id}/delivered", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = await async_client.post(f"/transactions/{transaction_id}/delivered")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == TransactionStatus.DELIVERED.value
    assert response.json()["delivered_at"] is not None

    response = await async_client.post(
        f"/transactions/{transaction_id}/cancel", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_409_CONFLICT

    response = await async_client.post(
        f"/transactions/{transaction_id}/confirm-delivery", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_200_OK
    details = response.json()
    assert details["status"] == TransactionStatus.COMPLETED.value
    assert details["completed_at"] is not None
    assert [event["event_type"] for event in details["events"]] == [
        "order_created",
        "payment_received",
        "delivery_marked",
        "delivery_confirmed",
    ]
    notified = {call.args[1] for call in notifications.await_args_list}
    assert notified == {seller.id, buyer.id}

    async with TestSessionLocal() as session:
        db_listing = (
            await session.execute(select(Listing).where(Listing.id == listing.id))
        ).scalar_one()
        db_seller = (
            await session.execute(select(User).where(User.id == seller.id))
        ).scalar_one()
    assert db_listing.status == ListingStatus.SOLD
    assert db_seller.total_sales == 1

    # completed is terminal
    response = await async_client.post(
        f"/transactions/{transaction_id}/confirm-delivery", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_confirm_delivery_from_escrow(
    async_client: AsyncClient, seller, buyer, razorpay, notifications
):
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)
    transaction_id = data["transaction"]["id"]

    response = await async_client.post(
        f"/transactions/{transaction_id}/confirm-delivery", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_409_CONFLICT

    await pay(async_client, data, buyer)

    response = await async_client.post(
        f"/transactions/{transaction_id}/confirm-delivery"
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = await async_client.post(
        f"/transactions/{transaction_id}/confirm-delivery", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == TransactionStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_cancel_transaction(async_client: AsyncClient, seller, buyer, razorpay):
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)
    transaction_id = data["transaction"]["id"]

    response = await async_client.post(
        f"/transactions/{transaction_id}/cancel", json={"reason": "Found it cheaper"}
    )
    assert response.status_code == status.HTTP_200_OK
    details = response.json()
    assert details["status"] == TransactionStatus.CANCELLED.value
    assert details["cancelled_at"] is not None
    assert details["events"][-1]["event_type"] == "cancelled"
    assert details["events"][-1]["notes"] == "Cancelled by seller: Found it cheaper"

    response = await async_client.get(f"/listings/{listing.id}", headers=as_user(buyer))
    assert response.json()["status"] == ListingStatus.ACTIVE.value

    response = await async_client.post(
        f"/transactions/{transaction_id}/cancel", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_my_transactions_by_role(
    async_client: AsyncClient, seller, buyer, razorpay
):
    sold_by_seller = await create_listing(seller)
    sold_by_buyer = await create_listing(buyer)
    purchase = await checkout(async_client, sold_by_seller.id, buyer)
    sale = await checkout(async_client, sold_by_buyer.id, seller)

    response = await async_client.get("/transactions/my")
    assert [t["id"] for t in response.json()] == [
        sale["transaction"]["id"],
        purchase["transaction"]["id"],
    ]

    response = await async_client.get("/transactions/my", params={"role": "seller"})
    assert [t["id"] for t in response.json()] == [purchase["transaction"]["id"]]

    response = await async_client.get("/transactions/my", params={"role": "buyer"})
    assert [t["id"] for t in response.json()] == [sale["transaction"]["id"]]

    response = await async_client.get("/transactions/my", params={"role": "admin"})
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
async def test_get_transaction_participants_only(
    async_client: AsyncClient, seller, buyer, razorpay
):
    outsider = await create_user()
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)
    transaction_id = data["transaction"]["id"]

    response = await async_client.get(f"/transactions/{transaction_id}")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["events"][0]["event_type"] == "order_created"

    response = await async_client.get(
        f"/transactions/{transaction_id}", headers=as_user(outsider)
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = await async_client.get("/transactions/999")
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_checkout_malformed_gateway_response(
    async_client: AsyncClient, seller, buyer, razorpay
):
    listing = await create_listing(seller)
    razorpay.malformed = True

    response = await async_client.post(
        f"/listings/{listing.id}/checkout", headers=as_user(buyer)
    )
    assert response.status_code == status.HTTP_502_BAD_GATEWAY

    razorpay.malformed = False
    await checkout(async_client, listing.id, buyer)


@pytest.mark.asyncio
async def test_parallel_checkouts_create_one_transaction(
    async_client: AsyncClient, seller, buyer, razorpay, monkeypatch
):
    # both requests passed the open transaction check before either committed
    monkeypatch.setattr(
        ListingService, "has_open_transaction", AsyncMock(return_value=False)
    )
    listing = await create_listing(seller)
    other_buyer = await create_user()

    await checkout(async_client, listing.id, buyer)
    response = await async_client.post(
        f"/listings/{listing.id}/checkout", headers=as_user(other_buyer)
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    assert len(razorpay.requests) == 1


@pytest.mark.asyncio
async def test_payment_after_expiry_is_recorded(
    async_client: AsyncClient, seller, buyer, razorpay, notifications
):
    listing = await create_listing(seller)
    data = await checkout(async_client, listing.id, buyer)
    transaction_id = data["transaction"]["id"]

    later = datetime.now(timezone.utc) + timedelta(minutes=31)
    assert await expire_unpaid_transactions(TestSessionLocal, now=later) == 1

    order_id = data["order"]["id"]
    response = await async_client.post(
        f"/transactions/{transaction_id}/verify-payment",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": "pay_late",
            "razorpay_signature": compute_payment_signature(
                order_id, "pay_late", TEST_KEY_SECRET
            ),
        },
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_409_CONFLICT
    notifications.assert_not_awaited()

    response = await async_client.get(f"/transactions/{transaction_id}")
    details = response.json()
    assert details["status"] == TransactionStatus.CANCELLED.value
    assert details["is_paid"] is False
    events = {event["event_type"]: event for event in details["events"]}
    assert set(events) == {
        "order_created",
        "payment_expired",
        "payment_after_cancellation",
    }
    assert events["payment_after_cancellation"]["notes"] == "pay_late"

    async with TestSessionLocal() as session:
        transaction = await session.get(Transaction, transaction_id)
        assert transaction.razorpay_payment_id == "pay_late"

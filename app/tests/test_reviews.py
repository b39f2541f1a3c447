from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi import status
from httpx import AsyncClient

from app.models.enums.transaction_status import TransactionStatus
from app.models.transaction_model import Transaction
from app.tests.conftest import TestSessionLocal, as_user, create_listing, create_user


async def create_transaction(
    listing, buyer, status: TransactionStatus = TransactionStatus.COMPLETED
) -> Transaction:
    now = datetime.now(timezone.utc)
    async with TestSessionLocal() as session:
        transaction = Transaction(
            listing_id=listing.id,
            buyer_id=buyer.id,
            seller_id=listing.seller_id,
            amount=listing.price,
            platform_fee=Decimal("50"),
            seller_amount=listing.price - Decimal("50"),
            status=status,
            paid_at=now,
            completed_at=now if status == TransactionStatus.COMPLETED else None,
        )
        session.add(transaction)
        await session.commit()
        return transaction


@pytest.mark.asyncio
async def test_review_completed_transaction(async_client: AsyncClient, seller, buyer):
    listing = await create_listing(seller)
    transaction = await create_transaction(listing, buyer)

    response = await async_client.post(
        f"/transactions/{transaction.id}/review",
        json={"rating": 4, "text": " Smooth handover "},
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["rating"] == 4
    assert data["text"] == "Smooth handover"
    assert data["transaction_id"] == transaction.id
    assert data["reviewer"] == {
        "id": buyer.id,
        "firstname": buyer.firstname,
        "lastname": buyer.lastname,
    }

    response = await async_client.get(f"/transactions/{transaction.id}")
    assert response.json()["has_review"] is True

    response = await async_client.post(
        f"/transactions/{transaction.id}/review",
        json={"rating": 1},
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_409_CONFLICT


@pytest.mark.asyncio
async def test_review_rules(async_client: AsyncClient, seller, buyer):
    listing = await create_listing(seller)
    open_transaction = await create_transaction(
        listing, buyer, status=TransactionStatus.DELIVERED
    )
    completed = await create_transaction(listing, buyer)

    response = await async_client.post(
        f"/transactions/{open_transaction.id}/review",
        json={"rating": 5},
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST

    # the seller cannot review themselves
    response = await async_client.post(
        f"/transactions/{completed.id}/review", json={"rating": 5}
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN

    for rating in (0, 6):
        response = await async_client.post(
            f"/transactions/{completed.id}/review",
            json={"rating": rating},
            headers=as_user(buyer),
        )
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    response = await async_client.post(
        f"/transactions/{completed.id}/review",
        json={"rating": 5, "text": "x" * 501},
        headers=as_user(buyer),
    )
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
async def test_user_reviews_and_seller_rating(
    async_client: AsyncClient, seller, buyer
):
    second_buyer = await create_user()
    for reviewer, rating in ((buyer, 5), (second_buyer, 4)):
        listing = await create_listing(seller)
        transaction = await create_transaction(listing, reviewer)
        response = await async_client.post(
            f"/transactions/{transaction.id}/review",
            json={"rating": rating},
            headers=as_user(reviewer),
        )
        assert response.status_code == status.HTTP_201_CREATED

    response = await async_client.get(f"/users/{seller.id}/reviews")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["user_id"] == seller.id
    assert data["average_rating"] == 4.5
    assert data["total_reviews"] == 2
    # newest first
    assert [review["rating"] for review in data["reviews"]] == [4, 5]

    response = await async_client.get("/profile")
    assert response.json()["rating"] == 4.5

    new_listing = await create_listing(seller)
    response = await async_client.get(
        f"/listings/{new_listing.id}", headers=as_user(buyer)
    )
    assert response.json()["seller"]["rating"] == 4.5


@pytest.mark.asyncio
async def test_reviews_of_user_without_reviews(async_client: AsyncClient, seller):
    response = await async_client.get(f"/users/{seller.id}/reviews")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "user_id": seller.id,
        "average_rating": None,
        "total_reviews": 0,
        "reviews": [],
    }

    response = await async_client.get("/users/999/reviews")
    assert response.status_code == status.HTTP_404_NOT_FOUND

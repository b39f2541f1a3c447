from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from firebase_admin import exceptions

from app.models.firebase_cloud_token_model import FirebaseCloudToken
from app.services.notifications import push_service
from app.tests.conftest import TestSessionLocal


async def add_tokens(user, *tokens):
    async with TestSessionLocal() as session:
        session.add_all(
            [FirebaseCloudToken(user_id=user.id, token=token) for token in tokens]
        )
        await session.commit()


@pytest.mark.asyncio
async def test_notify_user_without_devices(monkeypatch, seller):
    send = MagicMock()
    monkeypatch.setattr(push_service.messaging, "send_each_for_multicast", send)

    async with TestSessionLocal() as session:
        sent = await push_service.notify_user(session, seller.id, "Hi", "there")

    assert sent == 0
    send.assert_not_called()


@pytest.mark.asyncio
async def test_notify_user_sends_to_every_device(monkeypatch, seller):
    await add_tokens(seller, "token-a", "token-b")
    send = MagicMock(return_value=SimpleNamespace(success_count=2))
    monkeypatch.setattr(push_service.messaging, "send_each_for_multicast", send)

    async with TestSessionLocal() as session:
        sent = await push_service.notify_user(
            session, seller.id, "Payment received", "Paid", {"transaction_id": 3}
        )

    assert sent == 2
    message = send.call_args.args[0]
    assert sorted(message.tokens) == ["token-a", "token-b"]
    assert message.data == {"transaction_id": "3"}
    assert message.notification.title == "Payment received"


@pytest.mark.asyncio
async def test_notify_user_failure_is_swallowed(monkeypatch, seller):
    await add_tokens(seller, "token-a")
    send = MagicMock(side_effect=exceptions.UnavailableError("FCM is down"))
    monkeypatch.setattr(push_service.messaging, "send_each_for_multicast", send)

    async with TestSessionLocal() as session:
        sent = await push_service.notify_user(session, seller.id, "Hi", "there")

    assert sent == 0

import logging
from typing import Mapping

from fastapi.concurrency import run_in_threadpool
from firebase_admin import exceptions, messaging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.firebase_cloud_token_model import FirebaseCloudToken

logger = logging.getLogger(__name__)


async def get_user_tokens(session: AsyncSession, user_id: int) -> list[str]:
    result = await session.execute(
        select(FirebaseCloudToken.token).where(FirebaseCloudToken.user_id == user_id)
    )
    return [token for token in result.scalars().all() if token]


async def notify_user(
    session: AsyncSession,
    user_id: int,
    title: str,
    body: str,
    data: Mapping[str, str] | None = None,
) -> int:
    """
    Sends a push notification to every device of the user.

    Notifications are best effort: failures are logged and never propagated.
    Returns the number of successfully delivered messages.
    """
    token_strings = await get_user_tokens(session, user_id)
    if not token_strings:
        return 0

    message = messaging.MulticastMessage(
        notification=messaging.Notification(title=title, body=body),
        data={key: str(value) for key, value in (data or {}).items()},
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                channel_id="resale-updates",
                sound="default",
            ),
        ),
        tokens=token_strings,
    )
    try:
        # https://firebase.google.com/docs/reference/admin/python/firebase_admin.messaging
        response = await run_in_threadpool(messaging.send_each_for_multicast, message)
    except exceptions.FirebaseError as firebase_error:
        logger.warning("Error sending to FCM for user %s: %s", user_id, firebase_error)
        return 0
    except ValueError as value_error:
        logger.warning("Invalid message parameters: %s", value_error)
        return 0

    logger.info(
        "Sent %s/%s notifications to user %s",
        response.success_count,
        len(token_strings),
        user_id,
    )
    return response.success_count

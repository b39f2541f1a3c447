"""Socket.IO server delivering chat messages in realtime.

Every connected client joins a personal room ``user:<id>``; chat screens join
``conversation:<id>`` rooms. Messages are persisted through the REST API and
published here afterwards, delivery guarantees are those of socket.io.
"""

import logging

import socketio
from firebase_admin import auth
from sqlmodel import select

from app.api.middleware import verify_token
from app.core.config import config
from app.db.database import async_session
from app.models.conversation_model import Conversation
from app.models.message_model import Message
from app.models.user_model import User
from app.schemas.chat_schema import MessageRead

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi", cors_allowed_origins=config.socket_cors_origins
)


def conversation_room(conversation_id: int) -> str:
    return f"conversation:{conversation_id}"


def user_room(user_id: int) -> str:
    return f"user:{user_id}"


async def _get_user_id(email: str | None) -> int | None:
    if not email:
        return None
    async with async_session() as session:
        result = await session.execute(select(User.id).where(User.email == email))
        return result.scalar_one_or_none()


async def _is_participant(conversation_id: int, user_id: int) -> bool:
    async with async_session() as session:
        conversation = await session.get(Conversation, conversation_id)
    return conversation is not None and user_id in (
        conversation.buyer_id,
        conversation.seller_id,
    )


@sio.event
async def connect(sid, environ, auth_data=None):
    token = (auth_data or {}).get("token")
    if not token:
        return False  # reject the connection
    try:
        decoded = verify_token(token)
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError):
        return False

    user_id = await _get_user_id(decoded.get("email"))
    if user_id is None:
        return False

    await sio.save_session(sid, {"user_id": user_id})
    await sio.enter_room(sid, user_room(user_id))
    return True


@sio.event
async def join_conversation(sid, data):
    session = await sio.get_session(sid)
    conversation_id = (data or {}).get("conversation_id")
    if not isinstance(conversation_id, int):
        return {"ok": False, "error": "conversation_id is required"}
    if not await _is_participant(conversation_id, session["user_id"]):
        return {"ok": False, "error": "not a participant"}

    await sio.enter_room(sid, conversation_room(conversation_id))
    return {"ok": True}


@sio.event
async def leave_conversation(sid, data):
    conversation_id = (data or {}).get("conversation_id")
    if isinstance(conversation_id, int):
        await sio.leave_room(sid, conversation_room(conversation_id))
    return {"ok": True}


async def publish_message(message: Message) -> None:
    payload = MessageRead.model_validate(message).model_dump(mode="json")
    await sio.emit(
        "new_message", payload, room=conversation_room(message.conversation_id)
    )


async def publish_messages_read(conversation_id: int, reader_id: int) -> None:
    await sio.emit(
        "messages_read",
        {"conversation_id": conversation_id, "reader_id": reader_id},
        room=conversation_room(conversation_id),
    )

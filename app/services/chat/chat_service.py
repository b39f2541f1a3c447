import logging
from datetime import datetime, timezone

from fastapi import Depends, HTTPException, status
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlmodel import select

from app.api.dependencies import get_async_session
from app.models.conversation_model import Conversation
from app.models.listing_model import Listing
from app.models.message_model import Message
from app.models.user_model import User
from app.schemas.chat_schema import (
    ConversationListingInfo,
    ConversationRead,
    ConversationSummary,
    MessageRead,
)
from app.services.chat.moderation import BLOCKED_PLACEHOLDER, moderate_chat_message
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)


class ChatService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _conversation_query(self):
        return select(Conversation).options(
            selectinload(Conversation.listing),
            selectinload(Conversation.buyer),
            selectinload(Conversation.seller),
        )

    async def get_conversation(self, conversation_id: int) -> Conversation | None:
        result = await self.session.execute(
            self._conversation_query().where(Conversation.id == conversation_id)
        )
        return result.scalars().one_or_none()

    async def get_conversation_for_participant(
        self, conversation_id: int, user: User
    ) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Conversation with ID {conversation_id} not found.",
            )
        if user.id not in (conversation.buyer_id, conversation.seller_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not a participant of this conversation.",
            )
        return conversation

    def _participants_query(self, listing: Listing, buyer: User):
        return self._conversation_query().where(
            Conversation.listing_id == listing.id,
            Conversation.buyer_id == buyer.id,
            Conversation.seller_id == listing.seller_id,
        )

    async def find_conversation(
        self, listing: Listing, buyer: User
    ) -> Conversation | None:
        result = await self.session.execute(self._participants_query(listing, buyer))
        return result.scalars().one_or_none()

    async def get_or_create_conversation(
        self, listing: Listing, buyer: User
    ) -> tuple[Conversation, bool]:
        """
        Conversations are created lazily on the first chat attempt and are
        unique per (listing, buyer, seller).
        """
        existing = await self.find_conversation(listing, buyer)
        if existing is not None:
            return existing, False

        conversation = Conversation(
            listing_id=listing.id,
            buyer_id=buyer.id,
            seller_id=listing.seller_id,
        )
        self.session.add(conversation)
        try:
            await self.session.commit()
        except IntegrityError:
            # created concurrently by another request of the same buyer
            await self.session.rollback()
            return await self.find_conversation(listing, buyer), False

        return await self.get_conversation(conversation.id), True

    async def get_user_conversations(self, user: User) -> list[Conversation]:
        result = await self.session.execute(
            self._conversation_query()
            .where(
                or_(Conversation.buyer_id == user.id, Conversation.seller_id == user.id)
            )
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        )
        return result.scalars().all()

    async def get_messages(self, conversation_id: int) -> list[Message]:
        result = await self.session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at, Message.id)
        )
        return result.scalars().all()

    async def get_last_messages(
        self, conversation_ids: list[int]
    ) -> dict[int, Message]:
        if not conversation_ids:
            return {}
        last_ids = (
            select(func.max(Message.id).label("id"))
            .where(Message.conversation_id.in_(conversation_ids))
            .group_by(Message.conversation_id)
            .subquery()
        )
        result = await self.session.execute(
            select(Message).join(last_ids, Message.id == last_ids.c.id)
        )
        return {message.conversation_id: message for message in result.scalars().all()}

    async def get_unread_counts(
        self, conversation_ids: list[int], reader: User
    ) -> dict[int, int]:
        if not conversation_ids:
            return {}
        result = await self.session.execute(
            select(Message.conversation_id, func.count(Message.id))
            .where(
                Message.conversation_id.in_(conversation_ids),
                Message.sender_id != reader.id,
                Message.is_read == False,  # noqa: E712
            )
            .group_by(Message.conversation_id)
        )
        return dict(result.all())

    async def send_message(
        self, conversation: Conversation, sender: User, text: str
    ) -> tuple[Message, str | None]:
        """
        Stores the message after moderation.

        Blocked attempts are kept as a flagged placeholder so that admins can
        see them; the second value of the tuple is the reason of the block.
        """
        moderation = moderate_chat_message(text)
        now = datetime.now(timezone.utc)
        if moderation.allowed:
            message = Message(
                conversation_id=conversation.id,
                sender_id=sender.id,
                message_text=text,
                created_at=now,
            )
            conversation.updated_at = now
            self.session.add(conversation)
        else:
            logger.info(
                "Blocked message from user %s in conversation %s: %s",
                sender.id,
                conversation.id,
                moderation.flagged_reason,
            )
            message = Message(
                conversation_id=conversation.id,
                sender_id=sender.id,
                message_text=BLOCKED_PLACEHOLDER,
                is_flagged=True,
                flagged_reason=moderation.flagged_reason,
                created_at=now,
            )

        self.session.add(message)
        await self.session.commit()
        return message, moderation.flagged_reason

    async def mark_read(self, conversation_id: int, reader: User) -> int:
        """Marks the counterpart's messages as read, returns how many changed."""
        result = await self.session.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.sender_id != reader.id,
                Message.is_read == False,  # noqa: E712
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0

    @staticmethod
    def to_read(
        conversation: Conversation, ratings: dict[int, float] | None = None
    ) -> ConversationRead:
        ratings = ratings or {}
        return ConversationRead(
            id=conversation.id,
            listing=ConversationListingInfo(
                id=conversation.listing.id,
                title=conversation.listing.title,
                price=conversation.listing.price,
                status=conversation.listing.status,
            ),
            buyer=UserService.to_info_card(
                conversation.buyer, ratings.get(conversation.buyer_id)
            ),
            seller=UserService.to_info_card(
                conversation.seller, ratings.get(conversation.seller_id)
            ),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )

    @classmethod
    def to_summary(
        cls,
        conversation: Conversation,
        last_message: Message | None,
        unread_count: int,
        ratings: dict[int, float] | None = None,
    ) -> ConversationSummary:
        return ConversationSummary(
            **cls.to_read(conversation, ratings).model_dump(),
            last_message=(
                MessageRead.model_validate(last_message) if last_message else None
            ),
            unread_count=unread_count,
        )

    @classmethod
    async def get_dependency(
        cls,
        session: AsyncSession = Depends(get_async_session),
    ) -> "ChatService":
        return cls(session)

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api import realtime
from app.models.enums.listing_status import ListingStatus
from app.schemas.chat_schema import (
    ConversationRead,
    ConversationSummary,
    MarkReadResult,
    MessageCreate,
    MessageRead,
    MessageSendResult,
)
from app.services.chat.chat_service import ChatService
from app.services.chat.moderation import WARNING_MESSAGE
from app.services.listing.listing_service import ListingService
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


@router.post(
    "/listings/{listing_id}/conversations",
    response_model=ConversationRead,
    summary="Start a chat with the seller",
    description="Returns the existing conversation of the current user about the listing or creates a new one.",
)
async def start_conversation(
    *,
    listing_id: int,
    response: Response,
    user_service: UserService = Depends(UserService.get_dependency),
    listing_service: ListingService = Depends(ListingService.get_dependency),
    chat_service: ChatService = Depends(ChatService.get_dependency),
):
    current_user = await user_service.get_current_user()
    listing = await listing_service.get_visible_listing(listing_id, current_user)

    if listing.seller_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot chat with yourself.",
        )

    existing = await chat_service.find_conversation(listing, current_user)
    if existing is None and listing.status != ListingStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Chats can be started only for active listings.",
        )

    conversation, created = await chat_service.get_or_create_conversation(
        listing, current_user
    )
    if created:
        logger.info(
            "Conversation %s started by user %s about listing %s",
            conversation.id,
            current_user.id,
            listing.id,
        )

    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    ratings = await user_service.get_seller_ratings(
        {conversation.buyer_id, conversation.seller_id}
    )
    return chat_service.to_read(conversation, ratings)


@router.get(
    "/conversations/my",
    response_model=list[ConversationSummary],
    summary="Get current user's conversations",
    description="Conversations where the current user is the buyer or the seller, most recent activity first.",
)
async def get_my_conversations(
    *,
    user_service: UserService = Depends(UserService.get_dependency),
    chat_service: ChatService = Depends(ChatService.get_dependency),
):
    current_user = await user_service.get_current_user()
    conversations = await chat_service.get_user_conversations(current_user)

    conversation_ids = [conversation.id for conversation in conversations]
    last_messages = await chat_service.get_last_messages(conversation_ids)
    unread_counts = await chat_service.get_unread_counts(
        conversation_ids, current_user
    )
    ratings = await user_service.get_seller_ratings(
        {c.buyer_id for c in conversations} | {c.seller_id for c in conversations}
    )

    return [
        chat_service.to_summary(
            conversation,
            last_messages.get(conversation.id),
            unread_counts.get(conversation.id, 0),
            ratings,
        )
        for conversation in conversations
    ]


@router.get(
    "/conversations/{conversation_id}",
    response_model=ConversationRead,
    summary="Get a conversation",
)
async def get_conversation(
    *,
    conversation_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    chat_service: ChatService = Depends(ChatService.get_dependency),
):
    current_user = await user_service.get_current_user()
    conversation = await chat_service.get_conversation_for_participant(
        conversation_id, current_user
    )
    ratings = await user_service.get_seller_ratings(
        {conversation.buyer_id, conversation.seller_id}
    )
    return chat_service.to_read(conversation, ratings)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=list[MessageRead],
    summary="Get messages of a conversation",
    description="Messages in the order they were sent. The counterpart's messages are marked as read.",
)
async def get_messages(
    *,
    conversation_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    chat_service: ChatService = Depends(ChatService.get_dependency),
):
    current_user = await user_service.get_current_user()
    await chat_service.get_conversation_for_participant(conversation_id, current_user)

    messages = [
        MessageRead.model_validate(message)
        for message in await chat_service.get_messages(conversation_id)
    ]
    if await chat_service.mark_read(conversation_id, current_user):
        await realtime.publish_messages_read(conversation_id, current_user.id)
    return messages


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageSendResult,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
    description="Messages with phone numbers or WhatsApp references are blocked and not delivered.",
)
async def send_message(
    *,
    conversation_id: int,
    new_message: MessageCreate,
    user_service: UserService = Depends(UserService.get_dependency),
    chat_service: ChatService = Depends(ChatService.get_dependency),
):
    current_user = await user_service.get_current_user()
    conversation = await chat_service.get_conversation_for_participant(
        conversation_id, current_user
    )

    message, flagged_reason = await chat_service.send_message(
        conversation, current_user, new_message.message_text
    )
    if flagged_reason:
        return MessageSendResult(
            allowed=False,
            flagged_reason=flagged_reason,
            warning_message=WARNING_MESSAGE,
        )

    await realtime.publish_message(message)
    return MessageSendResult(allowed=True, message=MessageRead.model_validate(message))


@router.post(
    "/conversations/{conversation_id}/read",
    response_model=MarkReadResult,
    summary="Mark the counterpart's messages as read",
)
async def mark_conversation_read(
    *,
    conversation_id: int,
    user_service: UserService = Depends(UserService.get_dependency),
    chat_service: ChatService = Depends(ChatService.get_dependency),
):
    current_user = await user_service.get_current_user()
    await chat_service.get_conversation_for_participant(conversation_id, current_user)

    marked = await chat_service.mark_read(conversation_id, current_user)
    if marked:
        await realtime.publish_messages_read(conversation_id, current_user.id)
    return MarkReadResult(conversation_id=conversation_id, marked_read=marked)

# Importing this module registers every table on SQLModel.metadata and lets
# the string based relationships resolve.
from .admin_action_model import AdminAction
from .conversation_model import Conversation
from .favorite_listing_model import FavoriteListing
from .firebase_cloud_token_model import FirebaseCloudToken
from .listing_image import ListingImage
from .listing_model import Listing
from .message_model import Message
from .transaction_event_model import TransactionEvent
from .transaction_model import Transaction
from .user_model import User
from .user_review_model import UserReview

__all__ = [
    "AdminAction",
    "Conversation",
    "FavoriteListing",
    "FirebaseCloudToken",
    "Listing",
    "ListingImage",
    "Message",
    "Transaction",
    "TransactionEvent",
    "User",
    "UserReview",
]

from .item_condition import ItemCondition
from .listing_category import ListingCategory
from .listing_status import ListingStatus
from .moderation_action import ModerationAction
from .pickup_option import PickupOption
from .transaction_event_type import TransactionEventType
from .transaction_status import TransactionStatus

__all__ = [
    "ItemCondition",
    "ListingCategory",
    "ListingStatus",
    "ModerationAction",
    "PickupOption",
    "TransactionEventType",
    "TransactionStatus",
]

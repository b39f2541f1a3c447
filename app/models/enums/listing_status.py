from enum import Enum


# https://github.com/fastapi/sqlmodel/issues/96#issuecomment-921179607
class ListingStatus(str, Enum):
    # waiting for moderation, only the seller and admins can see it
    PENDING = "pending"
    ACTIVE = "active"
    SOLD = "sold"
    REMOVED = "removed"

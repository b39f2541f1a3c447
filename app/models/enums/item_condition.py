from enum import Enum


class ItemCondition(str, Enum):
    NEW = "new"
    LIKE_NEW = "like-new"
    GOOD = "good"
    FAIR = "fair"
    USED = "used"

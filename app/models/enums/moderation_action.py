from enum import Enum


class ModerationAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"

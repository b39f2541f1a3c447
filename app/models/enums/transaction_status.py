from enum import Enum


class TransactionStatus(str, Enum):
    # funds are held by the platform (or the payment is still pending)
    ESCROW = "escrow"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

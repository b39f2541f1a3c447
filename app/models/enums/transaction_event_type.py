from enum import Enum


class TransactionEventType(str, Enum):
    ORDER_CREATED = "order_created"
    PAYMENT_RECEIVED = "payment_received"
    DELIVERY_MARKED = "delivery_marked"
    DELIVERY_CONFIRMED = "delivery_confirmed"
    CANCELLED = "cancelled"
    PAYMENT_EXPIRED = "payment_expired"
    PAYMENT_AFTER_CANCELLATION = "payment_after_cancellation"

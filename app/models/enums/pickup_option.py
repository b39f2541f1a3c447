from enum import Enum


class PickupOption(str, Enum):
    PICKUP = "pickup"
    DELIVERY = "delivery"
    BOTH = "both"

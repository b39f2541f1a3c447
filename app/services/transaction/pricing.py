from decimal import ROUND_HALF_UP, Decimal

from app.schemas.transaction_schema import TransactionAmounts

WHOLE_RUPEE = Decimal("1")
CENTS = Decimal("0.01")


def calculate_amounts(price: Decimal, fee_percent: Decimal) -> TransactionAmounts:
    """
    Splits the item price between the platform and the seller.

    The platform fee is rounded half up to whole rupees, the seller gets the rest.
    """
    amount = Decimal(price).quantize(CENTS, rounding=ROUND_HALF_UP)
    platform_fee = (amount * Decimal(fee_percent) / 100).quantize(
        WHOLE_RUPEE, rounding=ROUND_HALF_UP
    )
    platform_fee = min(platform_fee, amount).quantize(CENTS)
    return TransactionAmounts(
        amount=amount,
        platform_fee=platform_fee,
        seller_amount=amount - platform_fee,
    )

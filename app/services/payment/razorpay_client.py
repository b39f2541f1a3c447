import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, AsyncGenerator, Mapping

import httpx

from app.core.config import config
from app.schemas.transaction_schema import PaymentOrder
from app.services.payment.exceptions import (
    InvalidPaymentSignature,
    PaymentGatewayError,
)

logger = logging.getLogger(__name__)


def to_paise(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    body = f"{order_id}|{payment_id}"
    return hmac.new(
        secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def verify_payment_signature(
    order_id: str, payment_id: str, signature: str, secret: str
) -> None:
    """
    Checks the signature the checkout widget returns after a successful payment.

    :raises InvalidPaymentSignature: If the signature does not match.
    """
    if not secret:
        raise InvalidPaymentSignature("Payment gateway secret is not configured.")
    expected = compute_payment_signature(order_id, payment_id, secret)
    if not hmac.compare_digest(expected, signature or ""):
        raise InvalidPaymentSignature("Invalid signature")


class RazorpayClient:
    """Thin async wrapper around the Razorpay orders API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = "https://api.razorpay.com/v1",
        timeout_seconds: float = 20.0,
        currency: str = "INR",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def create_order(
        self,
        amount: Decimal,
        receipt: str,
        notes: Mapping[str, Any] | None = None,
    ) -> PaymentOrder:
        payload = {
            "amount": to_paise(amount),
            "currency": self.currency,
            "receipt": receipt,
            "notes": {key: str(value) for key, value in (notes or {}).items()},
        }
        try:
            response = await self._client.post("/orders", json=payload)
        except httpx.HTTPError as e:
            logger.error("Razorpay order request failed: %s", e)
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e

        if response.is_error:
            logger.error(
                "Razorpay API error %s: %s", response.status_code, response.text
            )
            raise PaymentGatewayError(f"Razorpay API error: {response.text}")

        try:
            order = response.json()
            payment_order = PaymentOrder(
                id=order["id"],
                amount=order["amount"],
                currency=order["currency"],
                receipt=order.get("receipt"),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("Unexpected Razorpay order response: %s", response.text)
            raise PaymentGatewayError(f"Malformed order response: {e}") from e

        logger.info("Resale order created: %s", payment_order.id)
        return payment_order

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        verify_payment_signature(order_id, payment_id, signature, self.key_secret)


async def get_payment_gateway() -> AsyncGenerator[RazorpayClient, None]:
    client = RazorpayClient(
        config.razorpay_key_id,
        config.razorpay_key_secret,
        base_url=config.razorpay_api_url,
        timeout_seconds=config.razorpay_timeout_seconds,
        currency=config.payment_currency,
    )
    try:
        yield client
    finally:
        await client.aclose()

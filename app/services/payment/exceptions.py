class PaymentGatewayError(Exception):
    """Raised when the payment gateway rejects a request or cannot be reached."""

    pass


class InvalidPaymentSignature(Exception):
    """Raised when the signature sent by the checkout widget does not match."""

    pass

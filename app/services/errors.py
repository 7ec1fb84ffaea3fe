class BookingError(ValueError):
    """Business-rule violation; surfaced as 400 with the message."""


class NotFoundError(LookupError):
    pass


class PaymentGuardError(ValueError):
    """Payment cannot be initiated for the booking in its current state."""

    def __init__(self, message: str, existing_payment: dict | None = None):
        super().__init__(message)
        self.existing_payment = existing_payment


class PaymentGatewayError(RuntimeError):
    """Remote gateway rejected or failed a request."""

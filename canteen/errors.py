"""Errors raised by the ordering flow.

Validation errors are raised before any gateway call and map to 400.
Gateway and persistence errors map to 500 with a diagnostic payload.
"""


class CanteenError(Exception):
    message = "Something went wrong"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(CanteenError):
    message = "Invalid request"


class MissingUser(ValidationError):
    message = "Missing user"


class EmptyCart(ValidationError):
    message = "Cart is empty"


class InvalidAmount(ValidationError):
    message = "Invalid amount"


class UnknownMenuItem(ValidationError):
    message = "Unknown menu item"


class MissingOrderId(ValidationError):
    message = "Missing orderId"


class GatewayError(CanteenError):
    message = "Payment gateway error"

    @property
    def details(self):
        return self.message


class GatewayUnavailable(GatewayError):
    message = "Payment gateway unavailable"


class GatewayRejected(GatewayError):
    message = "Payment gateway rejected the request"

    def __init__(self, payload, status_code=None):
        super().__init__()
        self.payload = payload
        self.status_code = status_code

    @property
    def details(self):
        return self.payload


class MissingSessionToken(GatewayError):
    message = "No payment_session_id from Cashfree"

    def __init__(self, raw):
        super().__init__()
        self.raw = raw

    @property
    def details(self):
        return {"error": self.message, "raw": self.raw}


class InvalidWebhookSignature(CanteenError):
    message = "Invalid signature"


class PersistenceError(CanteenError):
    message = "Could not save the order"

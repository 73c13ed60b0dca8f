from typing import Optional


class PaymentGatewayException(Exception):
    """Base class for failures reported by the payment gateway."""

    def __init__(self, message: str = "", code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class DeclineException(PaymentGatewayException):
    """The card was declined. The customer may retry with other details."""


class HardDeclineException(DeclineException):
    """Permanent decline. Retrying with the same input will not succeed."""


class InvalidRequestException(PaymentGatewayException):
    """The request was malformed or not allowed."""


class AuthenticationException(PaymentGatewayException):
    """The gateway credentials were rejected."""


class InvalidResponseException(PaymentGatewayException):
    """Network failure or an unexpected response from Stripe."""


class PreconditionError(ValueError):
    """Invalid local state transition or missing input."""

"""Translates Stripe exceptions and result payloads into gateway failures."""
import logging
from dataclasses import dataclass
from typing import Any, Optional, Type, TypeVar

import stripe
from pydantic import BaseModel, ValidationError

from stripe_gateway.exceptions import (
    AuthenticationException,
    DeclineException,
    HardDeclineException,
    InvalidRequestException,
    InvalidResponseException,
    PaymentGatewayException,
)
from stripe_gateway.schemas import RemotePayload

logger = logging.getLogger(__name__)

# Stripe validation errors with these codes are not worth retrying.
HARD_DECLINE_CODES = {500, 502, 503, 504}

# Checked in order, the first matching class wins.
EXCEPTION_MAP = [
    (stripe.CardError, DeclineException,
     "We encountered an error processing your card details. "
     "Please verify your details and try again."),
    (stripe.RateLimitError, InvalidRequestException, "Too many requests."),
    (stripe.InvalidRequestError, InvalidRequestException,
     "Invalid parameters were supplied to Stripe's API."),
    (stripe.AuthenticationError, AuthenticationException,
     "Stripe authentication failed."),
    (stripe.APIConnectionError, InvalidResponseException,
     "Network communication with Stripe failed."),
    (stripe.StripeError, InvalidResponseException,
     "There was an error with Stripe request."),
]

ModelT = TypeVar("ModelT", bound=BaseModel)


def translate_exception(exception: Exception) -> PaymentGatewayException:
    """Return the gateway failure matching a Stripe SDK exception."""
    logger.warning("Stripe request failed: %s", exception)
    for stripe_class, failure_class, message in EXCEPTION_MAP:
        if isinstance(exception, stripe_class):
            return failure_class(message)
    return InvalidResponseException(str(exception))


def translate_result(payload: Any) -> RemotePayload:
    """Raise the failure reported inside a charge or refund payload.

    Returns the normalized payload when it carries no error.
    """
    result = normalize(payload, RemotePayload)
    if result.status == "succeeded":
        return result

    for error in result.deep_errors():
        logger.warning("Stripe returned error %s: %s", error.code, error.message)
        if error.code in HARD_DECLINE_CODES:
            raise HardDeclineException(error.message, error.code)
        raise InvalidRequestException(error.message, error.code)
    return result


def to_plain(value: Any) -> Any:
    """Turn SDK objects, and any nested in them, into plain dicts and lists."""
    if isinstance(value, stripe.StripeObject):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def normalize(payload: Any, model: Type[ModelT]) -> ModelT:
    payload = to_plain(payload)
    if not isinstance(payload, dict):
        raise InvalidResponseException("Unexpected response from Stripe.")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        logger.warning("Malformed Stripe response for %s: %s", model.__name__, e)
        raise InvalidResponseException("Unexpected response from Stripe.")


@dataclass
class RemoteResult:
    """Outcome of one Stripe call: a payload or a translated failure."""

    payload: Any = None
    failure: Optional[PaymentGatewayException] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> Any:
        if self.failure is not None:
            raise self.failure
        return self.payload

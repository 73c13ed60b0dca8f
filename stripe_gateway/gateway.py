"""Stripe payment gateway.

Drives the payment state machine for the host's payments and payment
methods. Every operation checks the local state first, then calls Stripe,
and only saves the new state once Stripe reported success:

    new -> authorization -> capture_completed | authorization_voided
    new -> capture_completed
    capture_completed -> capture_partially_refunded -> capture_refunded
"""
import calendar
import logging
import time
from decimal import Decimal
from typing import Dict, Optional

from stripe_gateway.amounts import to_remote_units
from stripe_gateway.config import GatewayConfig
from stripe_gateway.error_helper import RemoteResult, normalize, translate_result
from stripe_gateway.exceptions import (
    HardDeclineException,
    InvalidRequestException,
    InvalidResponseException,
    PreconditionError,
)
from stripe_gateway.models import Payment, PaymentMethod, PaymentState
from stripe_gateway.provisioning import PaymentMethodProvisioner
from stripe_gateway.schemas import RemoteBalance, RemotePayload
from stripe_gateway.stripe_service import PROVIDER, StripeService

logger = logging.getLogger(__name__)

REQUIRED_PAYMENT_DETAILS = ["stripe_token"]

CENT = Decimal("0.01")

# A fully refunded payment still passes the state check and is then
# rejected by the balance check.
REFUNDABLE_STATES = (
    PaymentState.CAPTURE_COMPLETED.value,
    PaymentState.CAPTURE_PARTIALLY_REFUNDED.value,
    PaymentState.CAPTURE_REFUNDED.value,
)


def calculate_expiration_timestamp(month: int, year: int) -> int:
    """First second after the card's expiry month, in UTC."""
    if month == 12:
        year, month = year + 1, 1
    else:
        month += 1
    return calendar.timegm((year, month, 1, 0, 0, 0))


def check_precision(amount: Decimal):
    if amount != amount.quantize(CENT):
        raise InvalidRequestException(f"The amount {amount} has more than two decimal places.")


def settle(result: RemoteResult) -> RemotePayload:
    """Raise the failure carried by a charge or refund call, if any."""
    if not result.ok:
        raise result.failure
    return translate_result(result.payload)


class StripeGateway:
    def __init__(self, config: GatewayConfig, db, service: Optional[StripeService] = None, clock=time.time):
        self.config = config
        self.db = db
        self.service = service or StripeService(config.active_secret_key)
        self.provisioner = PaymentMethodProvisioner(self.service, db)
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def get_publishable_key(self) -> str:
        return self.config.active_publishable_key

    def validate_configuration(self) -> Dict[str, str]:
        """Check each configured secret key against the mode it is set for."""
        errors = {}
        modes = {
            "secret_key_test": False,
            "secret_key": True,
        }
        for field, livemode in modes.items():
            key = getattr(self.config, field)
            if not key:
                continue
            result = StripeService(key).retrieve_balance()
            if not result.ok:
                errors[field] = f"Invalid {field}."
                continue
            try:
                balance = normalize(result.payload, RemoteBalance)
            except InvalidResponseException:
                errors[field] = f"Invalid {field}."
                continue
            if balance.livemode != livemode:
                mode = "live" if livemode else "test"
                errors[field] = f"The {field} is not for this mode: {mode}."
        return errors

    def _save(self, entity):
        self.db.add(entity)
        self.db.commit()

    def create_payment(self, payment: Payment, capture: bool = True):
        if payment.state != PaymentState.NEW:
            raise PreconditionError("The provided payment is in an invalid state.")
        payment_method = payment.payment_method
        if payment_method is None:
            raise PreconditionError("The provided payment has no payment method referenced.")
        if payment_method.is_expired(self.now()):
            raise HardDeclineException("The provided payment method has expired")
        check_precision(Decimal(payment.amount))

        owner = payment_method.owner
        customer_id = owner.get_remote_id(PROVIDER) if owner is not None else None

        result = self.service.create_charge(
            amount=to_remote_units(payment.amount),
            currency=payment.currency,
            customer=customer_id,
            source=payment_method.remote_id,
            capture=capture,
        )
        charge = settle(result)
        if not charge.id:
            raise InvalidResponseException("Stripe did not return a charge ID.")

        now = self.now()
        payment.state = (PaymentState.CAPTURE_COMPLETED if capture else PaymentState.AUTHORIZATION).value
        payment.remote_id = charge.id
        payment.authorized = now
        if capture:
            payment.completed = now
        self._save(payment)
        logger.info("Payment %s moved to %s (charge %s)", payment.id, payment.state, charge.id)

    def capture_payment(self, payment: Payment, amount: Optional[Decimal] = None):
        if payment.state != PaymentState.AUTHORIZATION:
            raise PreconditionError('Only payments in the "authorization" state can be captured.')
        # If not specified, capture the entire amount.
        amount = Decimal(amount) if amount is not None else Decimal(payment.amount)
        if amount <= 0 or amount > Decimal(payment.amount):
            raise InvalidRequestException(f"Can't capture {amount}, the authorized amount is {payment.amount}.")
        check_precision(amount)

        self.service.retrieve_charge(payment.remote_id).unwrap()
        settle(self.service.capture_charge(payment.remote_id, to_remote_units(amount)))

        payment.state = PaymentState.CAPTURE_COMPLETED.value
        payment.amount = amount
        payment.completed = self.now()
        self._save(payment)
        logger.info("Payment %s captured for %s %s", payment.id, amount, payment.currency)

    def void_payment(self, payment: Payment):
        if payment.state != PaymentState.AUTHORIZATION:
            raise PreconditionError('Only payments in the "authorization" state can be voided.')

        # Releases the uncaptured charge.
        settle(self.service.create_refund(payment.remote_id, to_remote_units(payment.amount)))

        payment.state = PaymentState.AUTHORIZATION_VOIDED.value
        self._save(payment)
        logger.info("Payment %s voided", payment.id)

    def refund_payment(self, payment: Payment, amount: Optional[Decimal] = None):
        if payment.state not in REFUNDABLE_STATES:
            raise PreconditionError(
                'Only payments in the "capture_completed" and "capture_partially_refunded" '
                "states can be refunded."
            )
        balance = payment.balance
        # If not specified, refund whatever is left.
        amount = Decimal(amount) if amount is not None else balance
        if amount <= 0:
            raise InvalidRequestException("The refund amount must be positive.")
        check_precision(amount)
        if amount > balance:
            raise InvalidRequestException(f"Can't refund more than {balance} {payment.currency}.")

        settle(self.service.create_refund(payment.remote_id, to_remote_units(amount)))

        refunded = Decimal(payment.refunded_amount or 0) + amount
        if refunded < Decimal(payment.amount):
            payment.state = PaymentState.CAPTURE_PARTIALLY_REFUNDED.value
        else:
            payment.state = PaymentState.CAPTURE_REFUNDED.value
        payment.refunded_amount = refunded
        self._save(payment)
        logger.info("Payment %s refunded %s, now %s", payment.id, amount, payment.state)

    def create_payment_method(self, payment_method: PaymentMethod, payment_details: dict):
        for required_key in REQUIRED_PAYMENT_DETAILS:
            if not payment_details.get(required_key):
                raise PreconditionError(f"payment_details must contain the {required_key} key.")
        owner = payment_method.owner
        if owner is None:
            raise PreconditionError("The provided payment method has no owner.")

        card = self.provisioner.provision(owner, payment_details["stripe_token"])
        try:
            expires = self.check_expiry(card.exp_month, card.exp_year)
        except HardDeclineException:
            # Stripe already attached the card to the customer.
            self.provisioner.discard(owner, card.remote_id)
            raise

        payment_method.card_type = card.card_type
        payment_method.card_number = card.last4
        payment_method.card_exp_month = card.exp_month
        payment_method.card_exp_year = card.exp_year
        payment_method.remote_id = card.remote_id
        payment_method.expires = expires
        self._save(payment_method)
        logger.info("Stored %s card ending %s for owner %s", card.card_type, card.last4, owner.id)

    def check_expiry(self, month: int, year: int) -> int:
        if not 1 <= month <= 12:
            raise HardDeclineException(f"Invalid card expiration month {month}.")
        expires = calculate_expiration_timestamp(month, year)
        if expires <= self.now():
            raise HardDeclineException("The provided card has expired.")
        return expires

    def delete_payment_method(self, payment_method: PaymentMethod):
        failure = None
        owner = payment_method.owner
        customer_id = owner.get_remote_id(PROVIDER) if owner is not None else None
        if customer_id and payment_method.remote_id:
            result = self.service.retrieve_customer(customer_id)
            if result.ok:
                result = self.service.delete_source(customer_id, payment_method.remote_id)
            failure = result.failure

        # The local record goes even when Stripe could not delete the card.
        payment_method_id = payment_method.id
        self.db.delete(payment_method)
        self.db.commit()
        logger.info("Deleted payment method %s", payment_method_id)
        if failure is not None:
            raise failure

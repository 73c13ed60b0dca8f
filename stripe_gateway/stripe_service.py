import logging

import stripe

from stripe_gateway.error_helper import RemoteResult, translate_exception

logger = logging.getLogger(__name__)

PROVIDER = "stripe"


class StripeService:
    """Stripe API calls made with one explicit secret key.

    Every call returns a RemoteResult; SDK exceptions are translated
    before they leave this class.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key

    def _call(self, operation, *args, **params) -> RemoteResult:
        logger.debug("Calling Stripe %s", getattr(operation, "__qualname__", operation))
        try:
            payload = operation(*args, api_key=self.api_key, **params)
        except Exception as e:
            failure = translate_exception(e)
            failure.__cause__ = e
            return RemoteResult(failure=failure)
        return RemoteResult(payload=payload)

    def create_charge(self, amount: int, currency: str, customer: str, source: str, capture: bool):
        return self._call(
            stripe.Charge.create,
            amount=amount,
            currency=currency,
            customer=customer,
            source=source,
            capture=capture,
        )

    def retrieve_charge(self, charge_id: str):
        return self._call(stripe.Charge.retrieve, charge_id)

    def capture_charge(self, charge_id: str, amount: int):
        return self._call(stripe.Charge.capture, charge_id, amount=amount)

    def create_refund(self, charge_id: str, amount: int):
        return self._call(stripe.Refund.create, charge=charge_id, amount=amount)

    def create_customer(self, email: str, description: str, source: str):
        return self._call(stripe.Customer.create, email=email, description=description, source=source)

    def retrieve_customer(self, customer_id: str):
        return self._call(stripe.Customer.retrieve, customer_id)

    def list_card_sources(self, customer_id: str):
        return self._call(stripe.Customer.list_sources, customer_id, object="card")

    def create_source(self, customer_id: str, token: str):
        return self._call(stripe.Customer.create_source, customer_id, source=token)

    def delete_source(self, customer_id: str, source_id: str):
        return self._call(stripe.Customer.delete_source, customer_id, source_id)

    def retrieve_balance(self):
        return self._call(stripe.Balance.retrieve)

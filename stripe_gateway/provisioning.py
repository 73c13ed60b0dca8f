import logging

from pydantic import BaseModel

from stripe_gateway.card_types import map_card_type
from stripe_gateway.error_helper import normalize
from stripe_gateway.exceptions import HardDeclineException, InvalidResponseException
from stripe_gateway.schemas import RemoteCard, RemoteCustomer, RemoteSourceList
from stripe_gateway.stripe_service import PROVIDER

logger = logging.getLogger(__name__)


class ProvisionedCard(BaseModel):
    remote_id: str
    card_type: str
    last4: str
    exp_month: int
    exp_year: int

    @classmethod
    def from_remote(cls, card: RemoteCard) -> "ProvisionedCard":
        return cls(
            remote_id=card.id,
            card_type=map_card_type(card.brand),
            last4=card.last4,
            exp_month=card.exp_month,
            exp_year=card.exp_year,
        )


class PaymentMethodProvisioner:
    """Attaches a tokenized card to the owner's Stripe customer."""

    def __init__(self, service, db):
        self.service = service
        self.db = db

    def provision(self, owner, token: str) -> ProvisionedCard:
        customer_id = owner.get_remote_id(PROVIDER)
        if customer_id:
            payload = self.service.create_source(customer_id, token).unwrap()
            return self._accept(owner, normalize(payload, RemoteCard))

        payload = self.service.create_customer(
            email=owner.email,
            description=f"Customer for {owner.email}",
            source=token,
        ).unwrap()
        customer = normalize(payload, RemoteCustomer)
        logger.info("Created Stripe customer %s for owner %s", customer.id, owner.id)

        # The customer exists remotely now, keep the reference even if
        # reading its cards back fails.
        owner.set_remote_id(PROVIDER, customer.id)
        self.db.add(owner)
        self.db.commit()

        sources = normalize(self.service.list_card_sources(customer.id).unwrap(), RemoteSourceList)
        cards = [
            normalize(source, RemoteCard)
            for source in sources.data
            if source.get("object", "card") == "card"
        ]
        if not cards:
            raise InvalidResponseException(f"Stripe customer {customer.id} has no card attached.")
        return self._accept(owner, cards[0])

    def _accept(self, owner, card: RemoteCard) -> ProvisionedCard:
        try:
            return ProvisionedCard.from_remote(card)
        except HardDeclineException:
            self.discard(owner, card.id)
            raise

    def discard(self, owner, source_id: str):
        """Best-effort removal of a card the store refused to keep."""
        customer_id = owner.get_remote_id(PROVIDER)
        result = self.service.delete_source(customer_id, source_id)
        if not result.ok:
            logger.warning("Card %s is still attached to Stripe customer %s", source_id, customer_id)

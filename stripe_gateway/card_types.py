from stripe_gateway.exceptions import HardDeclineException

# Stripe brand names to the credit card types the store knows.
CARD_TYPE_MAP = {
    "American Express": "amex",
    "Diners Club": "dinersclub",
    "Discover": "discover",
    "JCB": "jcb",
    "MasterCard": "mastercard",
    "Visa": "visa",
}


def map_card_type(brand: str) -> str:
    if brand not in CARD_TYPE_MAP:
        raise HardDeclineException(f'Unsupported credit card type "{brand}".')
    return CARD_TYPE_MAP[brand]

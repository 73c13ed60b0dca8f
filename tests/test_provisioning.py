import logging

import pytest
import stripe
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stripe_gateway.database import Base
from stripe_gateway.exceptions import DeclineException, HardDeclineException, InvalidResponseException
from stripe_gateway.models import Owner
from stripe_gateway.provisioning import PaymentMethodProvisioner
from stripe_gateway.stripe_service import StripeService

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_provisioning.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

VISA = {"id": "card_1", "object": "card", "brand": "Visa", "last4": "4242", "exp_month": 8, "exp_year": 2031}
AMEX = {"id": "card_2", "object": "card", "brand": "American Express", "last4": "0005", "exp_month": 3, "exp_year": 2032}


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def owner(db):
    owner = Owner(email="jane@example.com")
    db.add(owner)
    db.commit()
    return owner


@pytest.fixture
def provisioner(db):
    return PaymentMethodProvisioner(StripeService("sk_test_123"), db)


def test_first_card_creates_customer(provisioner, db, owner, mocker):
    create_customer = mocker.patch("stripe.Customer.create", return_value={"id": "cus_new", "object": "customer"})
    list_sources = mocker.patch("stripe.Customer.list_sources", return_value={"object": "list", "data": [VISA]})
    create_source = mocker.patch("stripe.Customer.create_source")

    card = provisioner.provision(owner, "tok_visa")

    create_customer.assert_called_once_with(
        api_key="sk_test_123",
        email="jane@example.com",
        description="Customer for jane@example.com",
        source="tok_visa",
    )
    list_sources.assert_called_once_with("cus_new", api_key="sk_test_123", object="card")
    create_source.assert_not_called()
    assert card.remote_id == "card_1"
    assert card.card_type == "visa"
    assert card.last4 == "4242"
    assert (card.exp_month, card.exp_year) == (8, 2031)

    # The reference survives a fresh session.
    other = TestingSessionLocal()
    assert other.get(Owner, owner.id).get_remote_id("stripe") == "cus_new"
    other.close()


def test_second_card_reuses_customer(provisioner, owner, mocker):
    create_customer = mocker.patch("stripe.Customer.create", return_value={"id": "cus_new"})
    mocker.patch("stripe.Customer.list_sources", return_value={"data": [VISA]})
    create_source = mocker.patch("stripe.Customer.create_source", return_value=AMEX)

    provisioner.provision(owner, "tok_visa")
    card = provisioner.provision(owner, "tok_amex")

    assert create_customer.call_count == 1
    create_source.assert_called_once_with("cus_new", api_key="sk_test_123", source="tok_amex")
    assert card.remote_id == "card_2"
    assert card.card_type == "amex"


def test_non_card_sources_are_skipped(provisioner, owner, mocker):
    mocker.patch("stripe.Customer.create", return_value={"id": "cus_new"})
    mocker.patch("stripe.Customer.list_sources", return_value={
        "data": [{"id": "ba_1", "object": "bank_account"}, VISA],
    })

    assert provisioner.provision(owner, "tok_visa").remote_id == "card_1"


def test_customer_without_cards_keeps_reference(provisioner, db, owner, mocker):
    mocker.patch("stripe.Customer.create", return_value={"id": "cus_empty"})
    mocker.patch("stripe.Customer.list_sources", return_value={"data": []})

    with pytest.raises(InvalidResponseException):
        provisioner.provision(owner, "tok_visa")

    db.refresh(owner)
    assert owner.get_remote_id("stripe") == "cus_empty"


def test_declined_token_creates_nothing(provisioner, db, owner, mocker):
    mocker.patch("stripe.Customer.create", side_effect=stripe.CardError("Your card was declined.", None, "card_declined"))
    list_sources = mocker.patch("stripe.Customer.list_sources")

    with pytest.raises(DeclineException):
        provisioner.provision(owner, "tok_chargeDeclined")

    list_sources.assert_not_called()
    db.refresh(owner)
    assert owner.get_remote_id("stripe") is None


def test_first_card_from_sdk_objects(provisioner, db, owner, mocker):
    customer = stripe.Customer.construct_from({"id": "cus_new", "object": "customer"}, "sk_test_123")
    sources = stripe.ListObject.construct_from({
        "object": "list",
        "data": [{"id": "ba_1", "object": "bank_account"}, VISA],
    }, "sk_test_123")
    mocker.patch("stripe.Customer.create", return_value=customer)
    mocker.patch("stripe.Customer.list_sources", return_value=sources)

    card = provisioner.provision(owner, "tok_visa")

    assert card.remote_id == "card_1"
    assert card.card_type == "visa"
    db.refresh(owner)
    assert owner.get_remote_id("stripe") == "cus_new"


def test_second_card_from_sdk_object(provisioner, owner, mocker):
    owner.set_remote_id("stripe", "cus_new")
    mocker.patch("stripe.Customer.create_source", return_value=stripe.Card.construct_from(AMEX, "sk_test_123"))

    card = provisioner.provision(owner, "tok_amex")

    assert card.remote_id == "card_2"
    assert (card.exp_month, card.exp_year) == (3, 2032)


def test_unsupported_brand_is_detached_from_new_customer(provisioner, db, owner, mocker):
    mocker.patch("stripe.Customer.create", return_value={"id": "cus_new"})
    mocker.patch("stripe.Customer.list_sources", return_value={"data": [dict(VISA, brand="UnionPay")]})
    delete_source = mocker.patch("stripe.Customer.delete_source", return_value={"id": "card_1", "deleted": True})

    with pytest.raises(HardDeclineException):
        provisioner.provision(owner, "tok_unionpay")

    delete_source.assert_called_once_with("cus_new", "card_1", api_key="sk_test_123")
    db.refresh(owner)
    assert owner.get_remote_id("stripe") == "cus_new"


def test_failed_detach_is_logged(provisioner, owner, mocker, caplog):
    owner.set_remote_id("stripe", "cus_new")
    mocker.patch("stripe.Customer.create_source", return_value=dict(AMEX, brand="UnionPay"))
    mocker.patch("stripe.Customer.delete_source", side_effect=stripe.APIConnectionError("Connection reset"))

    with caplog.at_level(logging.WARNING, logger="stripe_gateway.provisioning"):
        with pytest.raises(HardDeclineException):
            provisioner.provision(owner, "tok_unionpay")

    assert "Card card_2 is still attached to Stripe customer cus_new" in caplog.text

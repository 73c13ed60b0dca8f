import enum
import uuid
from decimal import Decimal

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from stripe_gateway.database import Base


def new_id():
    return str(uuid.uuid4())


class PaymentState(str, enum.Enum):
    NEW = "new"
    AUTHORIZATION = "authorization"
    AUTHORIZATION_VOIDED = "authorization_voided"
    CAPTURE_COMPLETED = "capture_completed"
    CAPTURE_PARTIALLY_REFUNDED = "capture_partially_refunded"
    CAPTURE_REFUNDED = "capture_refunded"


class RemoteId(Base):
    __tablename__ = "remote_ids"
    __table_args__ = (UniqueConstraint("owner_id", "provider"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, ForeignKey("owners.id"), nullable=False)
    provider = Column(String, nullable=False)
    remote_id = Column(String, nullable=False)


class Owner(Base):
    __tablename__ = "owners"

    id = Column(String, primary_key=True, default=new_id)
    email = Column(String, nullable=False)

    remote_ids = relationship("RemoteId", cascade="all, delete-orphan", lazy="selectin")

    def get_remote_id(self, provider):
        for remote in self.remote_ids:
            if remote.provider == provider:
                return remote.remote_id
        return None

    def set_remote_id(self, provider, remote_id):
        for remote in self.remote_ids:
            if remote.provider == provider:
                remote.remote_id = remote_id
                return
        self.remote_ids.append(RemoteId(provider=provider, remote_id=remote_id))


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(String, primary_key=True, default=new_id)
    owner_id = Column(String, ForeignKey("owners.id"))
    remote_id = Column(String)                     # Stripe card source ID
    card_type = Column(String)                     # amex | visa | ...
    card_number = Column(String)                   # last 4 digits
    card_exp_month = Column(Integer)
    card_exp_year = Column(Integer)
    expires = Column(Integer)                      # epoch seconds, 0 = never

    owner = relationship("Owner")

    @validates("remote_id")
    def validate_remote_id(self, key, value):
        if self.remote_id and value != self.remote_id:
            raise ValueError("The remote ID of a payment method cannot be changed.")
        return value

    def is_expired(self, now):
        return bool(self.expires) and now >= self.expires


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=new_id)
    order_id = Column(String, unique=True, index=True)
    payment_method_id = Column(String, ForeignKey("payment_methods.id"))
    amount = Column(Numeric(12, 2))
    currency = Column(String)
    state = Column(String, default=PaymentState.NEW.value)
    remote_id = Column(String)                     # Stripe charge ID
    refunded_amount = Column(Numeric(12, 2), default=Decimal("0"))
    authorized = Column(Integer)                   # epoch seconds
    completed = Column(Integer)                    # epoch seconds, set on capture

    payment_method = relationship("PaymentMethod")

    def __init__(self, **kwargs):
        kwargs.setdefault("state", PaymentState.NEW.value)
        kwargs.setdefault("refunded_amount", Decimal("0"))
        super().__init__(**kwargs)

    @validates("remote_id")
    def validate_remote_id(self, key, value):
        if self.remote_id and value != self.remote_id:
            raise ValueError("The remote ID of a payment cannot be changed.")
        return value

    @validates("refunded_amount")
    def validate_refunded_amount(self, key, value):
        if value is not None and self.amount is not None and Decimal(value) > Decimal(self.amount):
            raise ValueError("The refunded amount cannot exceed the payment amount.")
        return value

    @property
    def balance(self):
        return Decimal(self.amount) - Decimal(self.refunded_amount or 0)

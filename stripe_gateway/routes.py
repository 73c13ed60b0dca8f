from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, condecimal

from stripe_gateway.auth import verify_token
from stripe_gateway.config import GatewayConfig
from stripe_gateway.database import session_scope
from stripe_gateway.gateway import StripeGateway
from stripe_gateway.models import Owner, Payment, PaymentMethod, PaymentState

router = APIRouter()


class PaymentRequest(BaseModel):
    order_id: str
    payment_method_id: str
    amount: condecimal(gt=0, max_digits=12, decimal_places=2)
    currency: str = "eur"
    capture: bool = True


class AmountRequest(BaseModel):
    amount: Optional[condecimal(max_digits=12, decimal_places=2)] = None


class PaymentMethodRequest(BaseModel):
    owner_id: str
    stripe_token: str


def get_gateway(db):
    return StripeGateway(GatewayConfig.from_env(), db)


def serialize_payment(payment):
    return {
        "payment_id": payment.id,
        "order_id": payment.order_id,
        "state": payment.state,
        "amount": str(payment.amount),
        "refunded_amount": str(payment.refunded_amount),
        "currency": payment.currency,
        "remote_id": payment.remote_id,
    }


def load_or_404(db, model, entity_id):
    entity = db.get(model, entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail=f"{model.__name__} {entity_id} not found")
    return entity


@router.get("/gateway/publishable-key")
def publishable_key():
    config = GatewayConfig.from_env()
    return {"mode": config.mode, "publishable_key": config.active_publishable_key}


@router.post("/gateway/validate")
def validate_gateway(auth=Depends(verify_token)):
    with session_scope() as db:
        errors = get_gateway(db).validate_configuration()
    return {"valid": not errors, "errors": errors}


@router.post("/payment-methods")
def create_payment_method_api(request: PaymentMethodRequest, auth=Depends(verify_token)):
    with session_scope() as db:
        owner = load_or_404(db, Owner, request.owner_id)
        payment_method = PaymentMethod(owner=owner)
        get_gateway(db).create_payment_method(payment_method, {"stripe_token": request.stripe_token})
        return {
            "payment_method_id": payment_method.id,
            "card_type": payment_method.card_type,
            "card_number": payment_method.card_number,
            "card_exp_month": payment_method.card_exp_month,
            "card_exp_year": payment_method.card_exp_year,
        }


@router.delete("/payment-methods/{payment_method_id}")
def delete_payment_method_api(payment_method_id: str, auth=Depends(verify_token)):
    with session_scope() as db:
        payment_method = load_or_404(db, PaymentMethod, payment_method_id)
        get_gateway(db).delete_payment_method(payment_method)
    return {"deleted": payment_method_id}


@router.post("/payments")
def create_payment_api(request: PaymentRequest, auth=Depends(verify_token)):
    with session_scope() as db:
        # Same order, same payment.
        existing = db.query(Payment).filter_by(order_id=request.order_id).first()
        if existing:
            return serialize_payment(existing)

        payment = Payment(
            order_id=request.order_id,
            payment_method=load_or_404(db, PaymentMethod, request.payment_method_id),
            amount=request.amount,
            currency=request.currency,
            state=PaymentState.NEW.value,
        )
        get_gateway(db).create_payment(payment, capture=request.capture)
        return serialize_payment(payment)


@router.post("/payments/{payment_id}/capture")
def capture_payment_api(payment_id: str, request: AmountRequest = AmountRequest(), auth=Depends(verify_token)):
    with session_scope() as db:
        payment = load_or_404(db, Payment, payment_id)
        get_gateway(db).capture_payment(payment, request.amount)
        return serialize_payment(payment)


@router.post("/payments/{payment_id}/void")
def void_payment_api(payment_id: str, auth=Depends(verify_token)):
    with session_scope() as db:
        payment = load_or_404(db, Payment, payment_id)
        get_gateway(db).void_payment(payment)
        return serialize_payment(payment)


@router.post("/payments/{payment_id}/refund")
def refund_payment_api(payment_id: str, request: AmountRequest = AmountRequest(), auth=Depends(verify_token)):
    with session_scope() as db:
        payment = load_or_404(db, Payment, payment_id)
        get_gateway(db).refund_payment(payment, request.amount)
        return serialize_payment(payment)

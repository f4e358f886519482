from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db, get_mailer, get_gateway
from hamromart.api.v1.schemas import CheckoutRequest, OrderRead, OrderSummary, PaymentVerifyRequest
from hamromart.core.auth import Identity, get_current_identity
from hamromart.services import orders

router = APIRouter()

@router.post('', response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def checkout(payload: CheckoutRequest, identity: Identity = Depends(get_current_identity),
             db: Session = Depends(get_db), mailer=Depends(get_mailer)):
    return orders.place_order(db, identity, payload, mailer)

@router.get('', response_model=List[OrderSummary])
def my_orders(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return orders.list_own_orders(db, identity)

@router.get('/{order_id}', response_model=OrderRead)
def get_order(order_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return orders.get_order(db, identity, order_id)

@router.post('/{order_id}/cancel', response_model=OrderRead)
def cancel_order(order_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return orders.cancel_order(db, identity, order_id)

@router.post('/{order_id}/payments/verify', response_model=OrderRead)
def verify_payment(order_id: int, payload: PaymentVerifyRequest, identity: Identity = Depends(get_current_identity),
                   db: Session = Depends(get_db), gateway=Depends(get_gateway), mailer=Depends(get_mailer)):
    return orders.confirm_gateway_payment(db, identity, order_id, payload.token, payload.mobile, gateway, mailer)

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db, get_mailer, page_of
from hamromart.api.v1.schemas import OrderPage, OrderRead, OrderStatusUpdate
from hamromart.core.auth import Identity, require_admin
from hamromart.db.models import OrderStatus
from hamromart.services import orders

router = APIRouter()

@router.get('', response_model=OrderPage)
def list_orders(identity: Identity = Depends(require_admin), db: Session = Depends(get_db),
                status: Optional[OrderStatus] = None,
                page: int = Query(1, ge=1), page_size: int = Query(10, ge=1, le=100)):
    items, total = orders.list_orders(db, identity, status=status, page=page, page_size=page_size)
    return page_of(items, total, page, page_size)

@router.get('/{order_id}', response_model=OrderRead)
def get_order(order_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return orders.get_order(db, identity, order_id)

@router.post('/{order_id}/status', response_model=OrderRead)
def update_status(order_id: int, payload: OrderStatusUpdate, identity: Identity = Depends(require_admin),
                  db: Session = Depends(get_db), mailer=Depends(get_mailer)):
    return orders.update_status(db, identity, order_id, payload.status, mailer)

@router.post('/{order_id}/cancel', response_model=OrderRead)
def cancel_order(order_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return orders.cancel_order(db, identity, order_id)

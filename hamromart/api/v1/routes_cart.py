from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db
from hamromart.api.v1.schemas import CartRead, CartCount, CartItemAdd, CartItemUpdate
from hamromart.core.auth import Identity, get_current_identity
from hamromart.core.config import settings
from hamromart.services import cart

router = APIRouter()

@router.get('', response_model=CartRead)
def get_cart(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return cart.view(db, identity, settings.CURRENCY)

@router.get('/count', response_model=CartCount)
def cart_count(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return {'count': cart.count(db, identity)}

@router.post('/items', response_model=CartRead, status_code=status.HTTP_201_CREATED)
def add_item(payload: CartItemAdd, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    cart.add_item(db, identity, payload.product_id, payload.quantity)
    return cart.view(db, identity, settings.CURRENCY)

@router.patch('/items/{cart_item_id}', response_model=CartRead)
def update_item(cart_item_id: int, payload: CartItemUpdate, identity: Identity = Depends(get_current_identity),
                db: Session = Depends(get_db)):
    cart.update_quantity(db, identity, cart_item_id, payload.quantity)
    return cart.view(db, identity, settings.CURRENCY)

@router.delete('/items/{cart_item_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_item(cart_item_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    cart.remove_item(db, identity, cart_item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post('/clear', response_model=CartRead)
def clear_cart(identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    cart.clear(db, identity)
    return cart.view(db, identity, settings.CURRENCY)

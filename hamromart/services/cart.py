"""Per-user cart. Every query is filtered on the caller's user id."""
from typing import List, Tuple

import structlog
from sqlalchemy import select, func, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hamromart.core.auth import Identity
from hamromart.core.errors import NotFound, ProductUnavailable, InsufficientStock, ConcurrencyConflict
from hamromart.core.policy import Action, authorize
from hamromart.db.models import CartItem, Product
from hamromart.security.utils import now_utc

logger = structlog.get_logger(__name__)


def lines(db: Session, identity: Identity) -> List[Tuple[CartItem, Product]]:
    authorize(identity, Action.MANAGE_CART)
    stmt = (select(CartItem, Product)
            .join(Product, Product.id == CartItem.product_id)
            .where(CartItem.user_id == identity.user_id)
            .order_by(CartItem.added_at, CartItem.id))
    return [(ci, p) for ci, p in db.execute(stmt).all()]


def view(db: Session, identity: Identity, currency: str) -> dict:
    items = []
    for ci, p in lines(db, identity):
        price = p.effective_price_cents
        items.append({
            "id": ci.id,
            "product_id": p.id,
            "product_name": p.name,
            "image_url": p.image_url or '',
            "unit": p.unit or '',
            "unit_price_cents": price,
            "quantity": ci.quantity,
            "line_total_cents": price * ci.quantity,
            "stock_quantity": p.stock_quantity,
        })
    return {
        "items": items,
        "total_cents": sum(i["line_total_cents"] for i in items),
        "total_items": sum(i["quantity"] for i in items),
        "currency": currency,
    }


def count(db: Session, identity: Identity) -> int:
    authorize(identity, Action.MANAGE_CART)
    return db.scalar(select(func.coalesce(func.sum(CartItem.quantity), 0))
                     .where(CartItem.user_id == identity.user_id))


def add_item(db: Session, identity: Identity, product_id: int, quantity: int) -> CartItem:
    """Add ``quantity`` of a product; an existing line is merged and clamped to stock."""
    authorize(identity, Action.MANAGE_CART)
    product = db.get(Product, product_id)
    if product is None or not product.active or product.stock_quantity < quantity:
        raise ProductUnavailable("Product not available or insufficient stock.")

    existing = db.execute(select(CartItem).where(
        CartItem.user_id == identity.user_id, CartItem.product_id == product_id)).scalar_one_or_none()
    if existing:
        existing.quantity = min(existing.quantity + quantity, product.stock_quantity)
        item = existing
    else:
        item = CartItem(user_id=identity.user_id, product_id=product_id, quantity=quantity, added_at=now_utc())
        db.add(item)
    try:
        db.commit()
    except IntegrityError:
        # a parallel request created the line first; merge into it
        db.rollback()
        item = db.execute(select(CartItem).where(
            CartItem.user_id == identity.user_id, CartItem.product_id == product_id)).scalar_one_or_none()
        if item is None:
            raise ConcurrencyConflict("Your cart changed while adding the item. Please try again.")
        item.quantity = min(item.quantity + quantity, product.stock_quantity)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConcurrencyConflict("Your cart changed while adding the item. Please try again.") from exc
    db.refresh(item)
    logger.info("cart_item_added", product_id=product_id, quantity=item.quantity)
    return item


def _own_line(db: Session, identity: Identity, cart_item_id: int):
    return db.execute(select(CartItem).where(
        CartItem.id == cart_item_id, CartItem.user_id == identity.user_id)).scalar_one_or_none()


def update_quantity(db: Session, identity: Identity, cart_item_id: int, quantity: int):
    """Set a line's quantity. ``quantity <= 0`` removes the line and returns None."""
    authorize(identity, Action.MANAGE_CART)
    item = _own_line(db, identity, cart_item_id)
    if item is None:
        raise NotFound("Cart item not found.")
    if quantity <= 0:
        db.delete(item); db.commit()
        return None
    product = db.get(Product, item.product_id)
    if quantity > product.stock_quantity:
        raise InsufficientStock(product.name, product.stock_quantity)
    item.quantity = quantity
    db.commit(); db.refresh(item)
    return item


def remove_item(db: Session, identity: Identity, cart_item_id: int) -> bool:
    authorize(identity, Action.MANAGE_CART)
    item = _own_line(db, identity, cart_item_id)
    if item is None:
        return False
    db.delete(item); db.commit()
    return True


def clear(db: Session, identity: Identity) -> int:
    authorize(identity, Action.MANAGE_CART)
    res = db.execute(delete(CartItem).where(CartItem.user_id == identity.user_id))
    db.commit()
    return res.rowcount

"""Order lifecycle and payment reconciliation.

States run ``Pending -> Processing -> Shipped -> Delivered``; ``Cancelled`` is
reachable from ``Pending`` or ``Processing`` only.

Concurrency rules:

* checkout decrements stock with a guarded ``UPDATE ... WHERE stock >= qty``
  per line, in product-id order, inside one transaction. A line that no
  longer fits aborts the whole placement. The cart lines read are locked
  and must all be deleted by the same transaction, so one cart is never
  turned into two orders.
* every order transition is a compare-and-set on ``Order.version``; a stale
  write raises ``ConcurrencyConflict`` and changes nothing.
* the payment gateway is called with no transaction open. The transition is
  applied afterwards in a short conditional update.
"""
import secrets
from datetime import datetime
from typing import Optional, List, Tuple

import structlog
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from hamromart.core.auth import Identity
from hamromart.core.config import settings
from hamromart.core.errors import (
    ValidationError, NotFound, InvalidTransition, StockExceeded, ProductUnavailable,
    ConcurrencyConflict, PaymentDeclined,
)
from hamromart.core.policy import Action, authorize
from hamromart.db.models import (
    CartItem, Product, Order, OrderItem, User,
    OrderStatus, PaymentStatus, PaymentMethod, CANCELLABLE_STATUSES,
)
from hamromart.security.utils import now_utc
from hamromart.services import audit, mailer as notices
from hamromart.services.gateway import GatewayResult

logger = structlog.get_logger(__name__)


def generate_order_number(at: Optional[datetime] = None) -> str:
    at = at or now_utc()
    return f"ORD{at.strftime('%Y%m%d%H%M%S')}{at.microsecond // 1000:03d}{secrets.token_hex(3).upper()}"


def _order_query():
    return select(Order).options(selectinload(Order.items))


def _apply(db: Session, order: Order, **values):
    """Compare-and-set the order row on its version."""
    res = db.execute(
        update(Order)
        .where(Order.id == order.id, Order.version == order.version)
        .values(version=Order.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise ConcurrencyConflict("Order was modified by another request. Reload and try again.")


def _customer_email(db: Session, order: Order) -> Optional[str]:
    return db.scalar(select(User.email).where(User.id == order.user_id))


# --- placement ---

def place_order(db: Session, identity: Identity, checkout, mailer=None) -> Order:
    """Turn the caller's cart into an order.

    Either everything is persisted (order, items, stock decrements, emptied
    cart) or nothing is.
    """
    authorize(identity, Action.PLACE_ORDER)
    rows = db.execute(
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.user_id == identity.user_id)
        .order_by(CartItem.added_at, CartItem.id)
        .with_for_update(of=CartItem)
    ).all()
    if not rows:
        raise ValidationError("Your cart is empty.", field="cart")

    now = now_utc()
    order = Order(
        order_number=generate_order_number(now),
        user_id=identity.user_id,
        shipping_address=checkout.shipping_address,
        city=checkout.city,
        postal_code=checkout.postal_code,
        phone_number=checkout.phone_number,
        currency=settings.CURRENCY,
        payment_method=checkout.payment_method,
        payment_status=PaymentStatus.PENDING,
        order_status=OrderStatus.PENDING,
        ordered_at=now,
        version=1,
    )
    try:
        for ci, p in rows:
            if not p.active:
                raise ProductUnavailable(f"{p.name} is no longer available.")
            if ci.quantity > p.stock_quantity:
                raise StockExceeded(p.id, p.name, p.stock_quantity)

        for ci, p in sorted(rows, key=lambda r: r[1].id):
            res = db.execute(
                update(Product)
                .where(Product.id == p.id, Product.stock_quantity >= ci.quantity)
                .values(stock_quantity=Product.stock_quantity - ci.quantity)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                available = db.scalar(select(Product.stock_quantity).where(Product.id == p.id)) or 0
                raise StockExceeded(p.id, p.name, available)

        total = 0
        for ci, p in rows:
            unit_price = p.effective_price_cents
            line_total = unit_price * ci.quantity
            order.items.append(OrderItem(
                product_id=p.id,
                product_name=p.name,
                quantity=ci.quantity,
                unit_price_cents=unit_price,
                total_price_cents=line_total,
            ))
            total += line_total
        order.total_cents = total

        if checkout.payment_method == PaymentMethod.CASH_ON_DELIVERY:
            order.payment_status = PaymentStatus.COMPLETED
            order.order_status = OrderStatus.PROCESSING

        db.add(order)
        cleared = db.execute(delete(CartItem).where(
            CartItem.user_id == identity.user_id, CartItem.id.in_([ci.id for ci, _ in rows])))
        if cleared.rowcount != len(rows):
            # another checkout consumed these cart lines first
            raise ConcurrencyConflict("Your cart changed while the order was being placed. Please review it and try again.")
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConcurrencyConflict("Could not place the order. Please try again.") from exc
    except Exception:
        db.rollback()
        raise

    order_id = order.id
    logger.info("order_placed", order_id=order_id, order_number=order.order_number,
                total_cents=order.total_cents, payment_method=order.payment_method.value)
    audit.record(db, identity, "Created", "Order", order_id, f"Placed order {order.order_number}")
    placed = get_order(db, identity, order_id)
    if mailer is not None:
        notices.notify_order_received(mailer, identity.email, placed)
    return placed


# --- reads ---

def list_own_orders(db: Session, identity: Identity) -> List[Order]:
    authorize(identity, Action.VIEW_OWN_ORDERS)
    return db.execute(
        select(Order).where(Order.user_id == identity.user_id).order_by(Order.ordered_at.desc(), Order.id.desc())
    ).scalars().all()


def get_order(db: Session, identity: Identity, order_id: int) -> Order:
    """Own order for customers, any order for admins."""
    authorize(identity, Action.VIEW_OWN_ORDERS)
    stmt = _order_query().where(Order.id == order_id)
    if not identity.is_admin:
        stmt = stmt.where(Order.user_id == identity.user_id)
    order = db.execute(stmt).scalar_one_or_none()
    if order is None:
        raise NotFound("Order not found")
    return order


def list_orders(db: Session, identity: Identity, status: Optional[OrderStatus] = None,
                page: int = 1, page_size: int = 10) -> Tuple[List[Order], int]:
    authorize(identity, Action.MANAGE_ORDERS)
    filters = [Order.order_status == status] if status else []
    total = db.scalar(select(func.count(Order.id)).where(*filters))
    rows = db.execute(
        select(Order).where(*filters)
        .order_by(Order.ordered_at.desc(), Order.id.desc())
        .offset((page - 1) * page_size).limit(page_size)
    ).scalars().all()
    return rows, total


# --- transitions ---

def _lock_order(db: Session, identity: Identity, order_id: int) -> Order:
    stmt = _order_query().where(Order.id == order_id).with_for_update()
    if not identity.is_admin:
        stmt = stmt.where(Order.user_id == identity.user_id)
    order = db.execute(stmt).scalar_one_or_none()
    if order is None:
        raise NotFound("Order not found")
    return order


def cancel_order(db: Session, identity: Identity, order_id: int) -> Order:
    """Cancel a Pending/Processing order and put its quantities back in stock."""
    authorize(identity, Action.MANAGE_ORDERS if identity.is_admin else Action.CANCEL_OWN_ORDER)
    try:
        order = _lock_order(db, identity, order_id)
        if order.order_status not in CANCELLABLE_STATUSES:
            raise InvalidTransition("Order cannot be cancelled at this stage.")
        previous = order.order_status
        restock = [(item.product_id, item.quantity) for item in order.items]
        _apply(db, order, order_status=OrderStatus.CANCELLED)
        for product_id, quantity in sorted(restock):
            db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock_quantity=Product.stock_quantity + quantity)
                .execution_options(synchronize_session=False)
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("order_cancelled", order_id=order_id, previous_status=previous.value)
    audit.record(db, identity, "Cancelled", "Order", order_id,
                 f"Cancelled order {order.order_number} (was {previous.value})")
    return get_order(db, identity, order_id)


def update_status(db: Session, identity: Identity, order_id: int, status: OrderStatus, mailer=None) -> Order:
    """Back-office status change.

    Any status may be set; ``Cancelled`` goes through :func:`cancel_order` so
    stock is restored, and a cancelled order is final.
    """
    authorize(identity, Action.MANAGE_ORDERS)
    if status == OrderStatus.CANCELLED:
        return cancel_order(db, identity, order_id)
    try:
        order = _lock_order(db, identity, order_id)
        if order.order_status == OrderStatus.CANCELLED:
            raise InvalidTransition("Cancelled orders cannot be changed.")
        previous = order.order_status
        values = {"order_status": status}
        if status == OrderStatus.SHIPPED:
            values["shipped_at"] = now_utc()
        elif status == OrderStatus.DELIVERED:
            values["delivered_at"] = now_utc()
            values["payment_status"] = PaymentStatus.COMPLETED
        _apply(db, order, **values)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("order_status_updated", order_id=order_id, previous_status=previous.value, status=status.value)
    audit.record(db, identity, "Updated", "Order", order_id,
                 f"Updated order status from {previous.value} to {status.value}")
    updated = get_order(db, identity, order_id)
    if mailer is not None and status == OrderStatus.SHIPPED and previous != OrderStatus.SHIPPED:
        email = _customer_email(db, updated)
        if email:
            notices.notify_order_dispatched(mailer, email, updated)
    return updated


def confirm_gateway_payment(db: Session, identity: Identity, order_id: int, token: str, mobile: str,
                            gateway, mailer=None) -> Order:
    """Verify a gateway payment token and mark the order paid.

    Gateway errors (``ExternalServiceError``) and declines (``PaymentDeclined``)
    leave the order exactly as it was, so the customer can retry.
    """
    authorize(identity, Action.PAY_OWN_ORDER)
    order = db.execute(
        select(Order).where(Order.id == order_id, Order.user_id == identity.user_id)
    ).scalar_one_or_none()
    if order is None:
        raise NotFound("Order not found")
    if order.payment_method != PaymentMethod.GATEWAY:
        raise InvalidTransition("This order is not paid through the payment gateway.")
    if order.payment_status == PaymentStatus.COMPLETED:
        raise InvalidTransition("Payment has already been processed for this order.")
    if order.order_status != OrderStatus.PENDING:
        raise InvalidTransition(f"Order is {order.order_status.value} and cannot be paid.")
    expected_version = order.version
    amount_cents = order.total_cents
    order_number = order.order_number
    db.rollback()  # hold no transaction across the external call

    result = gateway.verify(token, amount_cents, mobile)
    if result != GatewayResult.COMPLETED:
        logger.info("payment_declined", order_id=order_id, order_number=order_number)
        raise PaymentDeclined("Payment verification failed. Please try again.")

    try:
        res = db.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.version == expected_version,
                Order.payment_status == PaymentStatus.PENDING,
                Order.order_status == OrderStatus.PENDING,
            )
            .values(
                payment_status=PaymentStatus.COMPLETED,
                order_status=OrderStatus.PROCESSING,
                version=Order.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise ConcurrencyConflict("Order changed while the payment was being verified.")
        db.commit()
    except Exception:
        db.rollback()
        logger.error("payment_not_applied", order_id=order_id, order_number=order_number)
        raise

    logger.info("payment_completed", order_id=order_id, order_number=order_number, amount_cents=amount_cents)
    audit.record(db, identity, "Updated", "Order", order_id, f"Gateway payment completed for order {order_number}")
    paid = get_order(db, identity, order_id)
    if mailer is not None:
        notices.notify_payment_received(mailer, identity.email, paid)
    return paid

"""Back-office figures. Revenue only counts orders whose payment completed."""
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import select, func, desc
from sqlalchemy.orm import Session, joinedload

from hamromart.core.auth import Identity
from hamromart.core.errors import ValidationError
from hamromart.core.policy import Action, Role, authorize
from hamromart.db.models import User, Product, Category, Order, OrderItem, OrderStatus, PaymentStatus
from hamromart.security.utils import now_utc

LOW_STOCK_THRESHOLD = 10

PAID = Order.payment_status == PaymentStatus.COMPLETED


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def dashboard(db: Session, identity: Identity, today: Optional[date] = None) -> dict:
    authorize(identity, Action.VIEW_REPORTS)
    today = today or now_utc().date()
    month_start = _day_start(today.replace(day=1))

    total_revenue = db.scalar(select(func.coalesce(func.sum(Order.total_cents), 0)).where(PAID))
    paid_orders = db.scalar(select(func.count(Order.id)).where(PAID))
    today_revenue = db.scalar(
        select(func.coalesce(func.sum(Order.total_cents), 0)).where(
            PAID,
            Order.ordered_at >= _day_start(today),
            Order.ordered_at < _day_start(today + timedelta(days=1)),
        )
    )

    recent = db.execute(
        select(Order).options(joinedload(Order.user))
        .order_by(Order.ordered_at.desc(), Order.id.desc()).limit(5)
    ).scalars().all()

    qty = func.sum(OrderItem.quantity).label("qty")
    popular = db.execute(
        select(OrderItem.product_id, OrderItem.product_name, qty,
               func.sum(OrderItem.total_price_cents).label("revenue"), Product.image_url)
        .join(Order, Order.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(PAID)
        .group_by(OrderItem.product_id, OrderItem.product_name, Product.image_url)
        .order_by(desc(qty), OrderItem.product_id)
        .limit(5)
    ).all()

    return {
        "total_users": db.scalar(select(func.count(User.id))),
        "total_products": db.scalar(select(func.count(Product.id)).where(Product.active.is_(True))),
        "total_orders": db.scalar(select(func.count(Order.id))),
        "pending_orders": db.scalar(select(func.count(Order.id)).where(Order.order_status == OrderStatus.PENDING)),
        "total_revenue_cents": total_revenue,
        "today_revenue_cents": today_revenue,
        "average_order_value_cents": total_revenue // paid_orders if paid_orders else 0,
        "products_low_stock": db.scalar(select(func.count(Product.id)).where(
            Product.stock_quantity > 0, Product.stock_quantity < LOW_STOCK_THRESHOLD)),
        "new_customers_this_month": db.scalar(select(func.count(User.id)).where(
            User.role == Role.CUSTOMER, User.created_at >= month_start)),
        "recent_orders": [
            {
                "order_id": o.id,
                "order_number": o.order_number,
                "customer_name": (o.user.full_name or o.user.email) if o.user else '',
                "amount_cents": o.total_cents,
                "status": o.order_status,
                "ordered_at": o.ordered_at,
            }
            for o in recent
        ],
        "popular_products": [
            {
                "product_id": row.product_id,
                "product_name": row.product_name,
                "sales_count": row.qty,
                "revenue_cents": row.revenue,
                "image_url": row.image_url or '',
            }
            for row in popular
        ],
    }


def sales_report(db: Session, identity: Identity, start_date: Optional[date] = None,
                 end_date: Optional[date] = None) -> dict:
    """Per-day paid revenue between two dates, both inclusive (default: last 30 days)."""
    authorize(identity, Action.VIEW_REPORTS)
    end_date = end_date or now_utc().date()
    start_date = start_date or end_date - timedelta(days=30)
    if start_date > end_date:
        raise ValidationError("Start date must not be after end date", field="start_date")
    window = (Order.ordered_at >= _day_start(start_date),
              Order.ordered_at < _day_start(end_date + timedelta(days=1)))

    # grouped in Python so the same code runs on every backend
    days = OrderedDict()
    for ordered_at, total in db.execute(
        select(Order.ordered_at, Order.total_cents).where(PAID, *window).order_by(Order.ordered_at)
    ).all():
        bucket = days.setdefault(ordered_at.date(), {"revenue_cents": 0, "orders": 0})
        bucket["revenue_cents"] += total
        bucket["orders"] += 1

    revenue = func.sum(OrderItem.total_price_cents).label("revenue")
    categories = db.execute(
        select(Category.name, revenue, func.sum(OrderItem.quantity).label("quantity"))
        .join(Product, Product.category_id == Category.id)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .where(PAID, *window)
        .group_by(Category.name)
        .order_by(desc(revenue), Category.name)
        .limit(10)
    ).all()

    sales = [{"day": d, **v} for d, v in days.items()]
    return {
        "start_date": start_date,
        "end_date": end_date,
        "sales": sales,
        "category_sales": [
            {"category_name": row.name, "revenue_cents": row.revenue, "quantity": row.quantity}
            for row in categories
        ],
        "total_revenue_cents": sum(s["revenue_cents"] for s in sales),
        "total_orders": sum(s["orders"] for s in sales),
    }

from typing import Optional, Tuple, List

from sqlalchemy import select, func, or_, delete
from sqlalchemy.orm import Session, joinedload

from hamromart.core.auth import Identity
from hamromart.core.errors import NotFound, Conflict, ValidationError
from hamromart.core.policy import Action, authorize
from hamromart.db.models import Category, Product, CartItem, OrderItem
from hamromart.security.utils import now_utc
from hamromart.services import audit

# columns a PATCH may not set to null
REQUIRED_PRODUCT_FIELDS = ('name', 'price_cents', 'stock_quantity', 'category_id', 'active')
BLANKABLE_PRODUCT_FIELDS = ('description', 'brand', 'unit')


def _product_query(active_only: bool):
    stmt = select(Product).options(joinedload(Product.category))
    if active_only:
        stmt = stmt.where(Product.active.is_(True))
    return stmt


def list_products(db: Session, q: Optional[str] = None, category_id: Optional[int] = None,
                  in_stock: Optional[bool] = None, page: int = 1, page_size: int = 12,
                  active_only: bool = True) -> Tuple[List[Product], int]:
    filters = []
    if active_only:
        filters.append(Product.active.is_(True))
    if category_id:
        filters.append(Product.category_id == category_id)
    if q:
        q_like = f"%{q.lower()}%"
        filters.append(or_(
            func.lower(Product.name).like(q_like),
            func.lower(Product.description).like(q_like),
            func.lower(Product.brand).like(q_like),
        ))
    if in_stock is True:
        filters.append(Product.stock_quantity > 0)
    elif in_stock is False:
        filters.append(Product.stock_quantity == 0)
    total = db.scalar(select(func.count(Product.id)).where(*filters))
    stmt = (_product_query(False).where(*filters)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .offset((page - 1) * page_size).limit(page_size))
    return db.execute(stmt).scalars().unique().all(), total


def get_product(db: Session, product_id: int, active_only: bool = True) -> Product:
    obj = db.execute(_product_query(active_only).where(Product.id == product_id)).scalar_one_or_none()
    if not obj:
        raise NotFound('Product not found')
    return obj


def related_products(db: Session, product: Product, limit: int = 4) -> List[Product]:
    stmt = (_product_query(True)
            .where(Product.category_id == product.category_id, Product.id != product.id)
            .order_by(Product.created_at.desc())
            .limit(limit))
    return db.execute(stmt).scalars().unique().all()


def list_categories(db: Session, active_only: bool = True) -> List[Category]:
    stmt = select(Category).order_by(Category.name)
    if active_only:
        stmt = stmt.where(Category.active.is_(True))
    return db.execute(stmt).scalars().all()


def _require_category(db: Session, category_id: int) -> Category:
    cat = db.get(Category, category_id)
    if not cat:
        raise ValidationError('Category does not exist', field='category_id')
    return cat


def create_product(db: Session, identity: Identity, payload) -> Product:
    authorize(identity, Action.MANAGE_CATALOG)
    _require_category(db, payload.category_id)
    fields = payload.model_dump()
    for k in BLANKABLE_PRODUCT_FIELDS:
        if fields[k] is None:
            fields[k] = ''
    obj = Product(**fields, created_at=now_utc())
    db.add(obj); db.commit(); db.refresh(obj)
    audit.record(db, identity, 'Created', 'Product', obj.id, f'Created product: {obj.name}')
    return get_product(db, obj.id, active_only=False)


def update_product(db: Session, identity: Identity, product_id: int, payload) -> Product:
    authorize(identity, Action.MANAGE_CATALOG)
    obj = get_product(db, product_id, active_only=False)
    changes = payload.model_dump(exclude_unset=True)
    for k, v in changes.items():
        if v is None and k in REQUIRED_PRODUCT_FIELDS:
            raise ValidationError(f'{k} cannot be null', field=k)
    for k in BLANKABLE_PRODUCT_FIELDS:
        if k in changes and changes[k] is None:
            changes[k] = ''
    if changes.get('category_id') is not None:
        _require_category(db, changes['category_id'])
    price = changes.get('price_cents', obj.price_cents)
    discount = changes['discount_price_cents'] if 'discount_price_cents' in changes else obj.discount_price_cents
    if discount is not None and discount >= price:
        raise ValidationError('Discount price must be lower than the price', field='discount_price_cents')
    for k, v in changes.items():
        setattr(obj, k, v)
    db.add(obj); db.commit()
    audit.record(db, identity, 'Updated', 'Product', obj.id, f'Updated product: {obj.name}')
    return get_product(db, product_id, active_only=False)


def set_product_image(db: Session, identity: Identity, product_id: int, url: str) -> Product:
    authorize(identity, Action.MANAGE_CATALOG)
    obj = get_product(db, product_id, active_only=False)
    obj.image_url = url
    db.add(obj); db.commit()
    audit.record(db, identity, 'Updated', 'Product', obj.id, f'Uploaded image for product: {obj.name}')
    return get_product(db, product_id, active_only=False)


def delete_product(db: Session, identity: Identity, product_id: int) -> Tuple[bool, bool]:
    """Hard-delete an unordered product, otherwise deactivate it.

    Returns ``(deleted, deactivated)``.
    """
    authorize(identity, Action.MANAGE_CATALOG)
    obj = db.get(Product, product_id)
    if not obj:
        raise NotFound('Product not found')
    name = obj.name
    ordered = db.scalar(select(func.count()).select_from(OrderItem).where(OrderItem.product_id == product_id))
    if ordered:
        obj.active = False
        db.add(obj); db.commit()
        audit.record(db, identity, 'Deactivated', 'Product', product_id,
                     f'Deactivated product due to existing orders: {name}')
        return False, True
    db.execute(delete(CartItem).where(CartItem.product_id == product_id))
    db.delete(obj); db.commit()
    audit.record(db, identity, 'Deleted', 'Product', product_id, f'Deleted product: {name}')
    return True, False


def create_category(db: Session, identity: Identity, payload) -> Category:
    authorize(identity, Action.MANAGE_CATALOG)
    if db.query(Category).filter(Category.name == payload.name).first():
        raise Conflict('Category already exists')
    obj = Category(**payload.model_dump(), created_at=now_utc())
    db.add(obj); db.commit(); db.refresh(obj)
    audit.record(db, identity, 'Created', 'Category', obj.id, f'Created category: {obj.name}')
    return obj


def update_category(db: Session, identity: Identity, category_id: int, payload) -> Category:
    authorize(identity, Action.MANAGE_CATALOG)
    obj = db.get(Category, category_id)
    if not obj:
        raise NotFound('Category not found')
    changes = payload.model_dump(exclude_unset=True)
    if changes.get('name') and changes['name'] != obj.name:
        if db.query(Category).filter(Category.name == changes['name']).first():
            raise Conflict('Category already exists')
    for k, v in changes.items():
        if v is not None:
            setattr(obj, k, v)
    db.add(obj); db.commit(); db.refresh(obj)
    audit.record(db, identity, 'Updated', 'Category', obj.id, f'Updated category: {obj.name}')
    return obj


def delete_category(db: Session, identity: Identity, category_id: int):
    authorize(identity, Action.MANAGE_CATALOG)
    obj = db.get(Category, category_id)
    if not obj:
        raise NotFound('Category not found')
    count = db.scalar(select(func.count()).select_from(Product).where(Product.category_id == category_id))
    if count:
        raise Conflict(f"Cannot delete category '{obj.name}' because it has {count} product(s). "
                       "Please reassign or delete the products first.")
    name = obj.name
    db.delete(obj); db.commit()
    audit.record(db, identity, 'Deleted', 'Category', category_id, f'Deleted category: {name}')

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db, page_of
from hamromart.api.v1.schemas import ProductPage, ProductDetail, CategoryRead
from hamromart.services import catalog

router = APIRouter()

@router.get('/products', response_model=ProductPage)
def list_products(db: Session = Depends(get_db), q: Optional[str] = None, category_id: Optional[int] = None,
                  in_stock: Optional[bool] = None, page: int = Query(1, ge=1), page_size: int = Query(12, ge=1, le=100)):
    items, total = catalog.list_products(db, q=q, category_id=category_id, in_stock=in_stock,
                                         page=page, page_size=page_size)
    return page_of(items, total, page, page_size)

@router.get('/products/{product_id}', response_model=ProductDetail)
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = catalog.get_product(db, product_id)
    return {'product': product, 'related': catalog.related_products(db, product)}

@router.get('/categories', response_model=List[CategoryRead])
def list_categories(db: Session = Depends(get_db)):
    return catalog.list_categories(db)

from typing import List, Optional

from fastapi import APIRouter, Depends, UploadFile, File, Query, Response, status
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db, get_uploader, page_of
from hamromart.api.v1.schemas import (
    ProductCreate, ProductUpdate, ProductRead, ProductPage, ProductDeleted,
    CategoryCreate, CategoryUpdate, CategoryRead,
)
from hamromart.core.auth import Identity, require_admin
from hamromart.core.errors import ValidationError
from hamromart.services import catalog

router = APIRouter()

ALLOWED_IMAGE_TYPES = {'image/jpeg', 'image/png', 'image/webp', 'image/gif'}

@router.get('/products', response_model=ProductPage)
def list_products(identity: Identity = Depends(require_admin), db: Session = Depends(get_db),
                  q: Optional[str] = None, category_id: Optional[int] = None,
                  page: int = Query(1, ge=1), page_size: int = Query(20, ge=1, le=100)):
    items, total = catalog.list_products(db, q=q, category_id=category_id, page=page, page_size=page_size,
                                         active_only=False)
    return page_of(items, total, page, page_size)

@router.post('/products', response_model=ProductRead, status_code=201)
def create_product(payload: ProductCreate, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.create_product(db, identity, payload)

@router.patch('/products/{product_id}', response_model=ProductRead)
def update_product(product_id: int, payload: ProductUpdate, identity: Identity = Depends(require_admin),
                   db: Session = Depends(get_db)):
    return catalog.update_product(db, identity, product_id, payload)

@router.delete('/products/{product_id}', response_model=ProductDeleted)
def delete_product(product_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    deleted, deactivated = catalog.delete_product(db, identity, product_id)
    return {'id': product_id, 'deleted': deleted, 'deactivated': deactivated}

@router.post('/products/{product_id}/image', response_model=ProductRead)
async def upload_product_image(product_id: int, file: UploadFile = File(...), identity: Identity = Depends(require_admin),
                               db: Session = Depends(get_db), upload=Depends(get_uploader)):
    catalog.get_product(db, product_id, active_only=False)
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError('Unsupported image type', field='file')
    content = await file.read(); ext = '.' + file.filename.rsplit('.',1)[-1].lower() if file.filename and '.' in file.filename else ''
    _, url = upload(content, file.content_type, ext=ext)
    return catalog.set_product_image(db, identity, product_id, url)

@router.get('/categories', response_model=List[CategoryRead])
def list_categories(identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.list_categories(db, active_only=False)

@router.post('/categories', response_model=CategoryRead, status_code=201)
def create_category(payload: CategoryCreate, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return catalog.create_category(db, identity, payload)

@router.patch('/categories/{category_id}', response_model=CategoryRead)
def update_category(category_id: int, payload: CategoryUpdate, identity: Identity = Depends(require_admin),
                    db: Session = Depends(get_db)):
    return catalog.update_category(db, identity, category_id, payload)

@router.delete('/categories/{category_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_category(category_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    catalog.delete_category(db, identity, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db, page_of
from hamromart.api.v1.schemas import UserPage, UserRead, UserStatusUpdate, AuditLogPage
from hamromart.core.auth import Identity, require_admin
from hamromart.core.policy import Action, authorize
from hamromart.services import accounts, audit

router = APIRouter()

@router.get('/users', response_model=UserPage)
def list_users(identity: Identity = Depends(require_admin), db: Session = Depends(get_db), q: Optional[str] = None,
               page: int = Query(1, ge=1), page_size: int = Query(20, ge=1, le=100)):
    items, total = accounts.list_users(db, identity, q=q, page=page, page_size=page_size)
    return page_of(items, total, page, page_size)

@router.delete('/users/{user_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_user(user_id: int, identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    accounts.delete_user(db, identity, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.patch('/users/{user_id}/status', response_model=UserRead)
def set_user_status(user_id: int, payload: UserStatusUpdate, identity: Identity = Depends(require_admin),
                    db: Session = Depends(get_db)):
    return accounts.set_active(db, identity, user_id, payload.is_active)

@router.get('/audit-logs', response_model=AuditLogPage)
def audit_logs(identity: Identity = Depends(require_admin), db: Session = Depends(get_db),
               page: int = Query(1, ge=1), page_size: int = Query(20, ge=1, le=100)):
    authorize(identity, Action.VIEW_AUDIT_LOG)
    items, total = audit.list_entries(db, page=page, page_size=page_size)
    return page_of(items, total, page, page_size)

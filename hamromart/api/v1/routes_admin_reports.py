from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hamromart.api.deps import get_db
from hamromart.api.v1.schemas import DashboardRead, ReportsRead
from hamromart.core.auth import Identity, require_admin
from hamromart.services import reports

router = APIRouter()

@router.get('/dashboard', response_model=DashboardRead)
def dashboard(identity: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return reports.dashboard(db, identity)

@router.get('/reports', response_model=ReportsRead)
def sales_report(identity: Identity = Depends(require_admin), db: Session = Depends(get_db),
                 start_date: Optional[date] = None, end_date: Optional[date] = None):
    return reports.sales_report(db, identity, start_date, end_date)

from typing import Optional

import structlog
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hamromart.core.auth import Identity
from hamromart.db.models import AuditLog
from hamromart.security.utils import now_utc

logger = structlog.get_logger(__name__)


def record(db: Session, identity: Optional[Identity], action: str, entity: str,
           entity_id: int = 0, description: str = '') -> bool:
    """Write one audit row in its own commit.

    Called after the audited change has been committed. A failure is logged
    and rolled back, never raised.
    """
    if identity is None:
        logger.warning("audit_skipped_no_actor", action=action, entity=entity, entity_id=entity_id)
        return False
    try:
        db.add(AuditLog(
            user_id=identity.user_id,
            action=action,
            entity=entity,
            entity_id=entity_id or 0,
            description=description[:1000],
            timestamp=now_utc(),
            ip_address=(identity.ip_address or '')[:45],
        ))
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.error("audit_write_failed", action=action, entity=entity, entity_id=entity_id, exc_info=True)
        return False


def list_entries(db: Session, page: int = 1, page_size: int = 20):
    total = db.scalar(select(func.count()).select_from(AuditLog))
    rows = db.execute(
        select(AuditLog)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).scalars().all()
    return rows, total

from math import ceil

from hamromart.db.session import SessionLocal
from hamromart.services import storage
from hamromart.services.gateway import PaymentGateway
from hamromart.services.mailer import SmtpMailer
from hamromart.store import registration_store

def get_db():
    db = SessionLocal()
    try: yield db
    finally: db.close()

def get_redis():
    return registration_store.get_client()

def get_mailer():
    return SmtpMailer()

def get_gateway():
    return PaymentGateway()

def get_uploader():
    return storage.upload_bytes

def page_of(items, total: int, page: int, page_size: int) -> dict:
    return {'items': items, 'total': total, 'page': page, 'page_size': page_size,
            'total_pages': ceil(total / page_size) if total else 0}

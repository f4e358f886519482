import os

os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hamromart.api import deps
from hamromart.api.v1.schemas import CheckoutRequest
from hamromart.core.auth import Identity
from hamromart.core.errors import ExternalServiceError
from hamromart.core.policy import Role
from hamromart.db.models import User, Category, Product, CartItem, PaymentMethod
from hamromart.db.session import Base
from hamromart.main import app
from hamromart.security.utils import hash_password, create_access_token, now_utc
from hamromart.services.gateway import GatewayResult

PASSWORD = "Secret123"


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html_body):
        if self.fail:
            raise ExternalServiceError("email", "SMTP unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html_body})

    def subjects(self, to=None):
        return [m["subject"] for m in self.sent if to is None or m["to"] == to]


class FakeGateway:
    """Plays back queued outcomes: a GatewayResult is returned, an exception raised."""

    def __init__(self):
        self.outcomes = []
        self.calls = []

    def verify(self, token, amount_cents, mobile):
        self.calls.append({"token": token, "amount": amount_cents, "mobile": mobile})
        outcome = self.outcomes.pop(0) if self.outcomes else GatewayResult.COMPLETED
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeUploader:
    def __init__(self):
        self.uploads = []

    def __call__(self, data, content_type, ext=''):
        key = f"products/upload{len(self.uploads) + 1}{ext}"
        self.uploads.append({"key": key, "size": len(data), "content_type": content_type})
        return key, f"http://minio:9000/product-images/{key}"


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(session_factory, redis_client, mailer, gateway, uploader):
    def _get_db():
        s = session_factory()
        try: yield s
        finally: s.close()

    app.dependency_overrides[deps.get_db] = _get_db
    app.dependency_overrides[deps.get_redis] = lambda: redis_client
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_uploader] = lambda: uploader
    yield TestClient(app)
    app.dependency_overrides.clear()


# --- factories ---

def make_user(db, email="customer@example.com", role=Role.CUSTOMER, password=PASSWORD, is_active=True,
              first_name="Sita", last_name="Sharma"):
    now = now_utc()
    user = User(email=email, password_hash=hash_password(password), role=role, first_name=first_name,
                last_name=last_name, is_active=is_active, created_at=now, updated_at=now)
    db.add(user); db.commit(); db.refresh(user)
    return user


def make_category(db, name="Vegetables"):
    cat = Category(name=name, created_at=now_utc())
    db.add(cat); db.commit(); db.refresh(cat)
    return cat


def make_product(db, category, name="Tomato", price_cents=10000, stock=5, discount_cents=None, active=True,
                 brand="", description=""):
    p = Product(name=name, price_cents=price_cents, discount_price_cents=discount_cents, stock_quantity=stock,
                category_id=category.id, active=active, brand=brand, description=description, created_at=now_utc())
    db.add(p); db.commit(); db.refresh(p)
    return p


def put_in_cart(db, user, product, quantity):
    item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity, added_at=now_utc())
    db.add(item); db.commit(); db.refresh(item)
    return item


def identity_for(user):
    return Identity(user_id=user.id, email=user.email, role=user.role)


def auth_headers(user):
    token, _ = create_access_token(user.id, user.email, user.role.value)
    return {"Authorization": f"Bearer {token}"}


def checkout_request(method=PaymentMethod.CASH_ON_DELIVERY):
    return CheckoutRequest(shipping_address="Baneshwor 12", city="Kathmandu", postal_code="44600",
                           phone_number="9800000000", payment_method=method)


@pytest.fixture
def customer(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, email="admin@hamromart.com", role=Role.ADMIN, first_name="Admin", last_name="User")


@pytest.fixture
def category(db):
    return make_category(db)

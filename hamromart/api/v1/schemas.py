import re
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from hamromart.core.policy import Role
from hamromart.db.models import OrderStatus, PaymentMethod, PaymentStatus

PASSWORD_RE = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{6,}$')


# --- auth ---

class RegisterPayload(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=100)
    confirm_password: str
    phone_number: Optional[str] = Field(default='', max_length=20)
    address: Optional[str] = Field(default='', max_length=200)
    city: Optional[str] = Field(default='', max_length=100)
    postal_code: Optional[str] = Field(default='', max_length=10)

    @field_validator('password')
    @classmethod
    def password_strength(cls, v: str) -> str:
        if not PASSWORD_RE.match(v):
            raise ValueError('Password must be at least 6 characters and include uppercase, lowercase, and a digit.')
        return v

    @model_validator(mode='after')
    def passwords_match(self):
        if self.password != self.confirm_password:
            raise ValueError('Passwords do not match')
        return self

class RegistrationPending(BaseModel):
    email: EmailStr
    message: str

class VerifyOtpPayload(BaseModel):
    email: EmailStr
    otp: str = Field(pattern=r'^\d{6}$')

class ResendOtpPayload(BaseModel):
    email: EmailStr

class LoginPayload(BaseModel):
    email: EmailStr
    password: str

class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = 'bearer'

class RefreshRequest(BaseModel):
    refresh_token: str

class UserRead(BaseModel):
    id: int
    email: EmailStr
    role: Role
    first_name: str
    last_name: str
    phone_number: str
    address: str
    city: str
    postal_code: str
    is_active: bool
    created_at: datetime
    class Config: from_attributes = True

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=10)


# --- catalog ---

class CategoryBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default='', max_length=500)
    image_url: Optional[str] = Field(default='', max_length=255)
    active: bool = True
class CategoryCreate(CategoryBase): pass
class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    image_url: Optional[str] = Field(default=None, max_length=255)
    active: Optional[bool] = None
class CategoryRead(CategoryBase):
    id: int
    created_at: datetime
    class Config: from_attributes = True

class ProductBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = ''
    price_cents: int = Field(ge=0)
    discount_price_cents: Optional[int] = Field(default=None, ge=0)
    stock_quantity: int = Field(ge=0)
    brand: Optional[str] = Field(default='', max_length=50)
    unit: Optional[str] = Field(default='', max_length=50)
    category_id: int
    active: bool = True
class ProductCreate(ProductBase):
    @model_validator(mode='after')
    def discount_below_price(self):
        if self.discount_price_cents is not None and self.discount_price_cents >= self.price_cents:
            raise ValueError('Discount price must be lower than the price')
        return self
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price_cents: Optional[int] = Field(default=None, ge=0)
    discount_price_cents: Optional[int] = Field(default=None, ge=0)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    brand: Optional[str] = Field(default=None, max_length=50)
    unit: Optional[str] = Field(default=None, max_length=50)
    category_id: Optional[int] = None
    active: Optional[bool] = None
class ProductRead(ProductBase):
    id: int
    image_url: str
    effective_price_cents: int
    category_name: Optional[str] = None
    created_at: datetime
    class Config: from_attributes = True
class ProductPage(BaseModel):
    items: List[ProductRead] = []
    total: int
    page: int
    page_size: int
    total_pages: int
class ProductDetail(BaseModel):
    product: ProductRead
    related: List[ProductRead] = []
class ProductDeleted(BaseModel):
    id: int
    deleted: bool
    deactivated: bool


# --- cart ---

class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1)

class CartItemUpdate(BaseModel):
    quantity: int  # <= 0 removes the line

class CartLineRead(BaseModel):
    id: int
    product_id: int
    product_name: str
    image_url: str
    unit: str
    unit_price_cents: int
    quantity: int
    line_total_cents: int
    stock_quantity: int

class CartRead(BaseModel):
    items: List[CartLineRead] = []
    total_cents: int = 0
    total_items: int = 0
    currency: str

class CartCount(BaseModel):
    count: int


# --- orders ---

class CheckoutRequest(BaseModel):
    shipping_address: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(min_length=1, max_length=10)
    phone_number: str = Field(min_length=7, max_length=20, pattern=r'^\+?[0-9 \-]+$')
    payment_method: PaymentMethod = PaymentMethod.CASH_ON_DELIVERY

class OrderItemRead(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    total_price_cents: int
    class Config: from_attributes = True

class OrderSummary(BaseModel):
    id: int
    order_number: str
    user_id: int
    total_cents: int
    currency: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    ordered_at: datetime
    class Config: from_attributes = True

class OrderRead(OrderSummary):
    shipping_address: str
    city: str
    postal_code: str
    phone_number: str
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemRead] = []

class OrderPage(BaseModel):
    items: List[OrderSummary] = []
    total: int
    page: int
    page_size: int
    total_pages: int

class PaymentVerifyRequest(BaseModel):
    token: str = Field(min_length=1)
    mobile: str = Field(min_length=7, max_length=20)

class OrderStatusUpdate(BaseModel):
    status: OrderStatus


# --- admin ---

class UserPage(BaseModel):
    items: List[UserRead] = []
    total: int
    page: int
    page_size: int
    total_pages: int

class UserStatusUpdate(BaseModel):
    is_active: bool

class RecentOrderRead(BaseModel):
    order_id: int
    order_number: str
    customer_name: str
    amount_cents: int
    status: OrderStatus
    ordered_at: datetime

class PopularProductRead(BaseModel):
    product_id: int
    product_name: str
    sales_count: int
    revenue_cents: int
    image_url: str

class DashboardRead(BaseModel):
    total_users: int
    total_products: int
    total_orders: int
    pending_orders: int
    total_revenue_cents: int
    today_revenue_cents: int
    average_order_value_cents: int
    products_low_stock: int
    new_customers_this_month: int
    recent_orders: List[RecentOrderRead] = []
    popular_products: List[PopularProductRead] = []

class SalesDay(BaseModel):
    day: date
    revenue_cents: int
    orders: int

class CategorySales(BaseModel):
    category_name: str
    revenue_cents: int
    quantity: int

class ReportsRead(BaseModel):
    start_date: date
    end_date: date
    sales: List[SalesDay] = []
    category_sales: List[CategorySales] = []
    total_revenue_cents: int
    total_orders: int

class AuditLogRead(BaseModel):
    id: int
    user_id: int
    action: str
    entity: str
    entity_id: int
    description: str
    timestamp: datetime
    ip_address: str
    class Config: from_attributes = True

class AuditLogPage(BaseModel):
    items: List[AuditLogRead] = []
    total: int
    page: int
    page_size: int
    total_pages: int

"""Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; ``main.py`` registers a single
handler that renders them the same way FastAPI renders ``HTTPException``.
"""
from typing import Optional


class StorefrontError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def detail(self):
        return self.message


class ValidationError(StorefrontError):
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    @property
    def detail(self):
        loc = ['body', self.field] if self.field else ['body']
        return [{'loc': loc, 'msg': self.message, 'type': 'value_error'}]


class AuthenticationFailed(StorefrontError):
    status_code = 401


class NotFound(StorefrontError):
    status_code = 404


class Conflict(StorefrontError):
    status_code = 409


class Forbidden(StorefrontError):
    status_code = 403


class InvalidTransition(StorefrontError):
    status_code = 409


class ConcurrencyConflict(StorefrontError):
    status_code = 409


class ProductUnavailable(StorefrontError):
    status_code = 409


class InsufficientStock(StorefrontError):
    status_code = 409

    def __init__(self, product_name: str, available: int):
        super().__init__(f'Only {available} units of {product_name} are available in stock.')
        self.product_name = product_name
        self.available = available


class StockExceeded(InsufficientStock):
    """Checkout-time stock failure naming the first offending product."""

    def __init__(self, product_id: int, product_name: str, available: int):
        super().__init__(product_name, available)
        self.product_id = product_id


class InvalidOTP(StorefrontError):
    status_code = 400


class OTPExpired(StorefrontError):
    status_code = 400


class PaymentDeclined(StorefrontError):
    status_code = 402


class ExternalServiceError(StorefrontError):
    status_code = 503

    def __init__(self, service: str, message: str):
        super().__init__(message)
        self.service = service

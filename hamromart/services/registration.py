"""Email-verified sign-up.

``register`` parks the form (password already hashed) in Redis and mails a
6-digit code. ``verify_otp`` consumes the code, creates the customer and
signs them in. Several unexpired codes may be live for one email at a time;
each is single use.
"""
from datetime import timedelta

import structlog
from redis import Redis
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hamromart.core.config import settings
from hamromart.core.errors import Conflict, NotFound, InvalidOTP, OTPExpired, ValidationError
from hamromart.core.policy import Role
from hamromart.db.models import User, OTPVerification
from hamromart.security.utils import hash_password, generate_otp, now_utc
from hamromart.services import accounts
from hamromart.services.mailer import send_otp
from hamromart.store import registration_store

logger = structlog.get_logger(__name__)


def _issue_otp(db: Session, mailer, email: str) -> OTPVerification:
    now = now_utc()
    otp = OTPVerification(
        email=email,
        code=generate_otp(),
        created_at=now,
        expires_at=now + timedelta(minutes=settings.OTP_EXPIRY_MINUTES),
        used=False,
    )
    db.add(otp); db.commit(); db.refresh(otp)
    send_otp(mailer, email, otp.code)
    logger.info("otp_issued", email=email, otp_id=otp.id)
    return otp


def register(db: Session, r: Redis, mailer, payload) -> str:
    email = str(payload.email).lower()
    if accounts.find_by_email(db, email):
        raise Conflict("Email already registered")
    registration_store.save_pending(r, email, {
        "email": email,
        "password_hash": hash_password(payload.password),
        "first_name": payload.first_name,
        "last_name": payload.last_name,
        "phone_number": payload.phone_number or '',
        "address": payload.address or '',
        "city": payload.city or '',
        "postal_code": payload.postal_code or '',
    })
    _issue_otp(db, mailer, email)
    return email


def resend_otp(db: Session, r: Redis, mailer, email: str) -> str:
    email = email.lower()
    if not registration_store.touch_pending(r, email):
        raise NotFound("No pending registration for this email. Please register again.")
    _issue_otp(db, mailer, email)
    return email


def verify_otp(db: Session, r: Redis, email: str, code: str):
    """Returns ``(user, tokens)`` for the newly created account."""
    email = email.lower()
    otp = db.execute(
        select(OTPVerification)
        .where(OTPVerification.email == email, OTPVerification.code == code, OTPVerification.used.is_(False))
        .order_by(OTPVerification.created_at.desc(), OTPVerification.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if otp is None:
        raise InvalidOTP("Invalid OTP")
    if otp.expires_at < now_utc():
        raise OTPExpired("OTP has expired. Please request a new one.")

    pending = registration_store.get_pending(r, email)
    if pending is None:
        raise ValidationError("Registration session expired. Please register again.", field="email")
    if accounts.find_by_email(db, email):
        raise Conflict("Email already registered")

    now = now_utc()
    user = User(
        email=email,
        password_hash=pending["password_hash"],
        role=Role.CUSTOMER,
        first_name=pending.get("first_name", ''),
        last_name=pending.get("last_name", ''),
        phone_number=pending.get("phone_number", ''),
        address=pending.get("address", ''),
        city=pending.get("city", ''),
        postal_code=pending.get("postal_code", ''),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    otp.used = True
    db.add(otp)
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise Conflict("Email already registered") from exc
    db.refresh(user)
    registration_store.drop_pending(r, email)
    logger.info("user_registered", user_id=user.id)
    return user, accounts.issue_tokens(db, user)

from typing import Optional, Tuple, List

import jwt
import structlog
from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from hamromart.core.auth import Identity
from hamromart.core.errors import AuthenticationFailed, NotFound, Conflict
from hamromart.core.policy import Action, Role, authorize
from hamromart.db.models import User, RefreshToken, Order
from hamromart.security.utils import (
    hash_password, verify_password, create_access_token, create_refresh_token,
    token_sha256, now_utc, decode_token,
)
from hamromart.services import audit

logger = structlog.get_logger(__name__)


def find_by_email(db: Session, email: str) -> Optional[User]:
    return db.execute(select(User).where(func.lower(User.email) == email.lower())).scalar_one_or_none()


def issue_tokens(db: Session, user: User) -> dict:
    """Mint an access token and a persisted refresh token for ``user``."""
    access, _ = create_access_token(user.id, user.email, user.role.value)
    refresh, jti, exp = create_refresh_token(user.id)
    db.add(RefreshToken(
        user_id=user.id,
        jti=jti,
        token_hash=token_sha256(refresh),
        expires_at=exp,
        revoked=False,
        created_at=now_utc(),
    ))
    db.commit()
    return {"access_token": access, "refresh_token": refresh, "token_type": "bearer"}


def login(db: Session, email: str, password: str) -> dict:
    user = find_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationFailed("Invalid credentials")
    if not user.is_active:
        raise AuthenticationFailed("Account is disabled")
    logger.info("user_logged_in", user_id=user.id)
    return issue_tokens(db, user)


def _refresh_claims(refresh_token: str) -> dict:
    try:
        claims = decode_token(refresh_token)
    except jwt.PyJWTError:
        raise AuthenticationFailed("Invalid refresh token")
    if claims.get("type") != "refresh" or not claims.get("jti") or not claims.get("sub"):
        raise AuthenticationFailed("Invalid refresh token")
    return claims


def refresh(db: Session, refresh_token: str) -> dict:
    """Rotate a refresh token: the presented one is revoked, a new pair is issued."""
    claims = _refresh_claims(refresh_token)
    rt = db.execute(
        select(RefreshToken).where(RefreshToken.jti == claims["jti"], RefreshToken.user_id == int(claims["sub"]))
    ).scalar_one_or_none()
    if not rt or rt.revoked or rt.expires_at < now_utc() or rt.token_hash != token_sha256(refresh_token):
        raise AuthenticationFailed("Refresh token not valid")
    user = rt.user
    if not user.is_active:
        raise AuthenticationFailed("Account is disabled")
    rt.revoked = True
    db.add(rt)
    return issue_tokens(db, user)


def logout(db: Session, refresh_token: str):
    claims = _refresh_claims(refresh_token)
    rt = db.execute(select(RefreshToken).where(RefreshToken.jti == claims["jti"])).scalar_one_or_none()
    if rt and not rt.revoked:
        rt.revoked = True
        db.add(rt)
        db.commit()


# --- profile ---

def get_profile(db: Session, identity: Identity) -> User:
    authorize(identity, Action.MANAGE_PROFILE)
    user = db.get(User, identity.user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def update_profile(db: Session, identity: Identity, payload) -> User:
    user = get_profile(db, identity)
    for k, v in payload.model_dump(exclude_unset=True).items():
        if v is not None:
            setattr(user, k, v)
    user.updated_at = now_utc()
    db.add(user); db.commit(); db.refresh(user)
    audit.record(db, identity, "Updated", "User", user.id, "Updated own profile")
    return user


# --- back office ---

def list_users(db: Session, identity: Identity, q: Optional[str] = None,
               page: int = 1, page_size: int = 20) -> Tuple[List[User], int]:
    authorize(identity, Action.MANAGE_USERS)
    filters = []
    if q:
        q_like = f"%{q.lower()}%"
        filters.append(or_(
            func.lower(User.email).like(q_like),
            func.lower(User.first_name).like(q_like),
            func.lower(User.last_name).like(q_like),
        ))
    total = db.scalar(select(func.count(User.id)).where(*filters))
    rows = db.execute(
        select(User).where(*filters)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * page_size).limit(page_size)
    ).scalars().all()
    return rows, total


def _other_user(db: Session, identity: Identity, user_id: int) -> User:
    if user_id == identity.user_id:
        raise Conflict("You cannot change your own account here.")
    user = db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def delete_user(db: Session, identity: Identity, user_id: int):
    """Delete a user without orders. Users with orders must be disabled instead."""
    authorize(identity, Action.MANAGE_USERS)
    user = _other_user(db, identity, user_id)
    orders = db.scalar(select(func.count(Order.id)).where(Order.user_id == user_id))
    if orders:
        raise Conflict(f"User has {orders} order(s) and cannot be deleted. Disable the account instead.")
    email = user.email
    db.delete(user); db.commit()
    logger.info("user_deleted", deleted_user_id=user_id)
    audit.record(db, identity, "Deleted", "User", user_id, f"Deleted user: {email}")


def set_active(db: Session, identity: Identity, user_id: int, is_active: bool) -> User:
    authorize(identity, Action.MANAGE_USERS)
    user = _other_user(db, identity, user_id)
    user.is_active = is_active
    user.updated_at = now_utc()
    db.add(user); db.commit(); db.refresh(user)
    audit.record(db, identity, "Enabled" if is_active else "Disabled", "User", user.id,
                 f"{'Enabled' if is_active else 'Disabled'} user: {user.email}")
    return user


def ensure_admin(db: Session, email: str, password: str) -> User:
    """Create the back-office account if it does not exist yet."""
    user = find_by_email(db, email)
    if user:
        return user
    now = now_utc()
    user = User(
        email=email.lower(),
        password_hash=hash_password(password),
        role=Role.ADMIN,
        first_name="Admin",
        last_name="User",
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(user); db.commit(); db.refresh(user)
    logger.info("admin_created", user_id=user.id)
    return user

from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
import jwt, uuid, hashlib, secrets
from typing import Tuple
from hamromart.core.config import settings

pwd_ctx = CryptContext(schemes=['bcrypt'], deprecated='auto')

def hash_password(p: str) -> str: return pwd_ctx.hash(p)

def verify_password(p: str, h: str) -> bool: return pwd_ctx.verify(p, h)

def now_utc() -> datetime:
    # naive UTC, matching the DateTime() columns
    return datetime.now(timezone.utc).replace(tzinfo=None)

def generate_jti() -> str: return uuid.uuid4().hex

def generate_otp() -> str: return f'{100000 + secrets.randbelow(900000)}'

def token_sha256(t: str) -> str: return hashlib.sha256(t.encode('utf-8')).hexdigest()

def create_access_token(user_id: int, email: str, role: str) -> Tuple[str, datetime]:
    exp = now_utc() + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRES_SECONDS)
    payload = {'sub': str(user_id), 'email': email, 'role': role, 'exp': exp, 'type': 'access'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def create_refresh_token(user_id: int):
    exp = now_utc() + timedelta(days=settings.REFRESH_TOKEN_EXPIRES_DAYS)
    jti = generate_jti()
    payload = {'sub': str(user_id), 'jti': jti, 'exp': exp, 'type': 'refresh'}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), jti, exp

def decode_token(token: str):
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

"""Pending registrations, held in Redis until the emailed OTP is verified."""
import json
from typing import Dict, Any, Optional
from redis import Redis
from hamromart.core.config import settings

def get_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def registration_key(email: str) -> str:
    return f"registration:{email.lower()}"

def save_pending(r: Redis, email: str, data: Dict[str, Any], ttl_seconds: Optional[int] = None):
    r.set(registration_key(email), json.dumps(data), ex=ttl_seconds or settings.REGISTRATION_TTL_SECONDS)

def get_pending(r: Redis, email: str) -> Optional[Dict[str, Any]]:
    raw = r.get(registration_key(email))
    if raw is None:
        return None
    return json.loads(raw)

def touch_pending(r: Redis, email: str) -> bool:
    """Extend the TTL of a pending registration; False when none is held."""
    return bool(r.expire(registration_key(email), settings.REGISTRATION_TTL_SECONDS))

def drop_pending(r: Redis, email: str):
    r.delete(registration_key(email))

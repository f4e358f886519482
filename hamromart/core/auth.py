from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt

from hamromart.core.logging import add_context
from hamromart.core.policy import Role
from hamromart.security.utils import decode_token

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Authenticated caller, passed explicitly into every workflow call."""
    user_id: int
    email: str
    role: Role
    ip_address: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def identity_from_claims(payload: dict, ip_address: Optional[str] = None) -> Identity:
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid access token")
    try:
        return Identity(
            user_id=int(payload["sub"]),
            email=payload.get("email", ""),
            role=Role(payload.get("role")),
            ip_address=ip_address,
        )
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid access token")


def get_current_identity(request: Request, creds: HTTPAuthorizationCredentials = Depends(security)) -> Identity:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    identity = identity_from_claims(payload, request.client.host if request.client else None)
    add_context(user_id=identity.user_id)
    return identity


def require_admin(identity: Identity = Depends(get_current_identity)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return identity

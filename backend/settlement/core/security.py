"""
Caller identity and JWT handling.

Authentication itself (login, passwords) lives outside this service: callers
arrive with a bearer token that already names them. Every ledger operation
receives the resolved ``Caller`` explicitly and checks ownership uniformly.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from settlement.core.config import get_settings
from settlement.core.exceptions import NotAuthorized

ROLE_USER = "user"
ROLE_ORGANIZER = "organizer"
ROLE_ADMIN = "admin"
ROLE_SYSTEM = "system"  # payment collaborator, scheduled jobs

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    user_id: Optional[int]
    role: str = ROLE_USER

    @classmethod
    def system(cls) -> "Caller":
        return cls(user_id=None, role=ROLE_SYSTEM)

    @property
    def is_system(self) -> bool:
        return self.role == ROLE_SYSTEM

    @property
    def is_privileged(self) -> bool:
        return self.role in (ROLE_ADMIN, ROLE_SYSTEM)

    def can_act_for(self, owner_id: Optional[int]) -> bool:
        return self.is_privileged or (self.user_id is not None and self.user_id == owner_id)


def require_owner(caller: Caller, owner_id: Optional[int], action: str) -> None:
    """Raise NotAuthorized unless the caller owns the resource (or is admin/system)."""
    if not caller.can_act_for(owner_id):
        raise NotAuthorized(action)


def require_system(caller: Caller, action: str) -> None:
    if not caller.is_privileged:
        raise NotAuthorized(action)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    to_encode.setdefault("role", ROLE_USER)
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Caller:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    role = payload.get("role", ROLE_USER)
    sub = payload.get("sub")
    if role != ROLE_SYSTEM and sub is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Caller(user_id=int(sub) if sub is not None else None, role=role)


async def get_current_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Caller:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_access_token(credentials.credentials)

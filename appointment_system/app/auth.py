# auth.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Union

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from .dependencies import UserRole
import os
import logging

# Get JWT secret key from environment variable
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 30))

# Tokens are issued by the surrounding identity service; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


@dataclass(frozen=True)
class ClientActor:
    client_id: int
    role = UserRole.CLIENT


@dataclass(frozen=True)
class ProviderActor:
    provider_id: int
    role = UserRole.PROVIDER


@dataclass(frozen=True)
class AdminActor:
    admin_id: int
    role = UserRole.ADMIN


Actor = Union[ClientActor, ProviderActor, AdminActor]

_ACTOR_TYPES = {
    UserRole.CLIENT.value: ClientActor,
    UserRole.PROVIDER.value: ProviderActor,
    UserRole.ADMIN.value: AdminActor,
}


def actor_from_claims(claims: dict) -> Actor:
    actor_type = _ACTOR_TYPES.get(claims.get("role"))
    subject = claims.get("sub")
    if actor_type is None or subject is None:
        raise ValueError("Token is missing required data")
    return actor_type(int(subject))


def create_access_token(subject_id: int, role: UserRole, expires_delta: timedelta = None):
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(subject_id), "role": UserRole(role).value, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not SECRET_KEY:
        logging.error("JWT_SECRET_KEY is not configured; rejecting all tokens")
        raise credentials_exception
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return actor_from_claims(payload)
    except (JWTError, ValueError) as e:
        logging.error(f"Token rejected: {str(e)}")
        raise credentials_exception


def role_required(*required_roles: UserRole, admit_admin: bool = True):
    """Dependency that admits the listed roles, plus admins unless admit_admin is off."""
    allowed = {UserRole(role) for role in required_roles}
    if admit_admin:
        allowed.add(UserRole.ADMIN)

    async def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=403, detail="User does not have the required role")
        return actor

    return checker

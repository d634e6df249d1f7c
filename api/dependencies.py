"""API Dependencies - bearer authentication and role gates"""
from typing import Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from domain.auth import User, UserInDB
from domain.enums import UserRole
from domain.value_objects import Actor
from infrastructure.security import decode_access_token, get_password_hash
from api.schemas import TokenData

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def _account(user_id: str, username: str, full_name: str, email: str, password: str, role: UserRole) -> dict:
    return {
        "user_id": user_id,
        "username": username,
        "full_name": full_name,
        "email": email,
        "plain_password": password,  # hashed on first lookup
        "role": role,
        "disabled": False,
    }


# Demo directory; real accounts live in the campus identity service
fake_users_db: Dict[str, dict] = {
    "admin": _account("123e4567-e89b-12d3-a456-426614174000", "admin", "Facilities Admin",
                      "admin@example.com", "admin123", UserRole.ADMIN),
    "alice": _account("123e4567-e89b-12d3-a456-426614174001", "alice", "Alice Student",
                      "alice@example.com", "alice123", UserRole.STUDENT),
    "bob": _account("123e4567-e89b-12d3-a456-426614174002", "bob", "Bob Student",
                    "bob@example.com", "bob123", UserRole.STUDENT),
    "guard": _account("123e4567-e89b-12d3-a456-426614174003", "guard", "Campus Security",
                      "security@example.com", "guard123", UserRole.SECURITY),
}

_hashed_passwords: Dict[str, str] = {}


def _hashed_password(username: str, record: dict) -> str:
    if username not in _hashed_passwords:
        _hashed_passwords[username] = get_password_hash(record["plain_password"])
    return _hashed_passwords[username]


def get_user(db: Dict[str, dict], username: str) -> Optional[UserInDB]:
    record = db.get(username)
    if record is None:
        return None
    fields = {k: v for k, v in record.items() if k != "plain_password"}
    if "plain_password" in record:
        fields["hashed_password"] = _hashed_password(username, record)
    return UserInDB(**fields)


async def get_current_user(token: str = Depends(oauth2_scheme)) -> UserInDB:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
        token_data = TokenData(username=payload.get("sub"), role=payload.get("role"))
    except (JWTError, ValueError):
        raise credentials_exception
    if token_data.username is None:
        raise credentials_exception

    user = get_user(fake_users_db, token_data.username)
    # A role change invalidates tokens issued under the old role
    if user is None or (token_data.role is not None and token_data.role != user.role):
        raise credentials_exception
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


async def get_current_actor(current_user: User = Depends(get_current_active_user)) -> Actor:
    return current_user.as_actor()


def require_roles(*roles: UserRole):
    """Dependency admitting only actors that hold one of the roles"""
    async def checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return actor
    return checker

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import get_env


class ActorRole(str, enum.Enum):
    SELLER = "seller"
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class AuthContext:
    """Who is calling. Passed explicitly into every service call."""
    actor_id: uuid.UUID
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


security = HTTPBearer(auto_error=False)


def create_access_token(actor_id: uuid.UUID, role: ActorRole, expires_delta: timedelta | None = None) -> str:
    env = get_env()
    expire = datetime.now(timezone.utc) + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=env.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"sub": str(actor_id), "role": ActorRole(role).value, "exp": expire}
    return jwt.encode(to_encode, env.JWT_SECRET, algorithm=env.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    env = get_env()
    return jwt.decode(token, env.JWT_SECRET, algorithms=[env.JWT_ALGORITHM])


def get_auth_context(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> AuthContext:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
        return AuthContext(actor_id=uuid.UUID(payload["sub"]), role=ActorRole(payload["role"]))
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def require_role(*roles: ActorRole):
    def dependency(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if ctx.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied for this role")
        return ctx
    return dependency

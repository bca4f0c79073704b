from datetime import datetime, timezone, timedelta
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from order_engine.core.config import settings
from order_engine.core.enums import UserRole
from order_engine.schemas.caller import Caller

JWT_ALGORITHM = "HS256"

# tokens are minted by the identity service; this scheme only reads them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def create_access_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    expires = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire_dt = datetime.now(timezone.utc) + timedelta(minutes=expires)
    to_encode = {"sub": str(subject), "role": str(role), "exp": expire_dt}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_caller(token: str) -> Caller:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[JWT_ALGORITHM])
        user_id = payload.get("sub")
        role = payload.get("role")
        if user_id is None or role is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        return Caller(id=int(user_id), role=UserRole(role))
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


async def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    return decode_caller(token)


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if caller.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return caller

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone

from app.config.config import settings
from app.schemas.user_schemas import SessionUser
from app.schemas.status_schema import UserRole

# Tokens are issued by the session provider; this service only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/session")


def create_session_token(data: dict, expires_minutes: int = 60) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.SESSION_SECRET, algorithm=settings.SESSION_ALGORITHM
    )
    return encoded_jwt


async def get_current_user(token: str = Depends(oauth2_scheme)) -> SessionUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token, settings.SESSION_SECRET, algorithms=[settings.SESSION_ALGORITHM]
        )
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    return SessionUser(
        id=user_id,
        role=payload.get("role", UserRole.CUSTOMER.value),
        name=payload.get("name"),
    )


async def get_current_shopper(
    current_user: SessionUser = Depends(get_current_user),
) -> SessionUser:
    if current_user.role != UserRole.SHOPPER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You must be logged in as a shopper",
        )
    return current_user

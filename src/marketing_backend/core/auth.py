"""Authentication module for dashboard JWT handling."""

from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from marketing_backend.core.dependencies import get_salla_settings

security = HTTPBearer()


class TokenData(BaseModel):
    """Token data model."""

    user_id: int
    exp: Optional[datetime] = None


def create_access_token(user_id: int) -> str:
    """Create a new JWT access token for a dashboard user."""
    settings = get_salla_settings()
    expire = datetime.now(UTC) + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode = {"user_id": user_id, "exp": expire}
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def decode_access_token(token: str) -> TokenData:
    """
    Validate a dashboard JWT.

    Raises:
        HTTPException: 401 if the token is malformed, expired or has no user id.
    """
    settings = get_salla_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    user_id_value: Any | None = payload.get("user_id")
    if not isinstance(user_id_value, int) or isinstance(user_id_value, bool):
        raise credentials_exception

    exp_value = payload.get("exp")
    if exp_value is None:
        raise credentials_exception

    token_data = TokenData(user_id=user_id_value, exp=datetime.fromtimestamp(exp_value, tz=UTC))

    if token_data.exp is None or token_data.exp < datetime.now(UTC):
        raise credentials_exception

    return token_data


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> TokenData:
    """Validate JWT token and return the calling user."""
    return decode_access_token(credentials.credentials)

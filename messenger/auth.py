import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from messenger.config import settings
from messenger.database import get_db
from messenger.models.user import User
from messenger.repositories.user_repository import UserRepository
from messenger.revocation import RevocationStore, get_revocation_store

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Session token carrying the user id and a unique ``jti`` used for revocation."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(user_id),
        "jti": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def verify_token(token: Optional[str], revocation: RevocationStore) -> Optional[int]:
    """Return the user id for a valid, unrevoked token, otherwise None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None

    subject, jti = payload.get("sub"), payload.get("jti")
    if subject is None or jti is None:
        return None
    if await revocation.is_revoked(jti):
        return None
    try:
        return int(subject)
    except (TypeError, ValueError):
        return None


async def revoke_token(token: Optional[str], revocation: RevocationStore) -> bool:
    """Revoke ``token`` until it would have expired. Invalid tokens are ignored."""
    if not token:
        return False
    try:
        payload = jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM], options={"verify_exp": False}
        )
    except JWTError:
        return False

    jti = payload.get("jti")
    if not jti:
        return False
    remaining = int(payload.get("exp", 0) - datetime.now(timezone.utc).timestamp())
    await revocation.revoke(jti, remaining)
    return True


async def authenticate_user(db: AsyncSession, email: str, password: str) -> Optional[User]:
    user = await UserRepository(db).get_by_email(email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def get_request_token(request: Request, bearer: Optional[str] = Depends(oauth2_scheme)) -> Optional[str]:
    return bearer or request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_current_user(
    token: Optional[str] = Depends(get_request_token),
    db: AsyncSession = Depends(get_db),
    revocation: RevocationStore = Depends(get_revocation_store)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = await verify_token(token, revocation)
    if user_id is None:
        raise credentials_exception

    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        raise credentials_exception
    return user

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
import bcrypt
from fastapi import Depends, HTTPException, status, Cookie, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from buspass.core.config import settings
from buspass.core.logger import logger, log_auth_attempt

# Bearer token scheme; cookie auth is tried first
security = HTTPBearer(auto_error=False)

ROLE_SUPER_ADMIN = "super_admin"
ROLE_ADMIN = "admin"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its bcrypt hash"""
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError as e:
        logger.error(f"Password verification error: {str(e)}")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("Token verification failed: Token has expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired. Please login again.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except JWTError as e:
        logger.warning(f"Token verification failed: {type(e).__name__} - {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials. Please login again.",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_admin(
    request: Request,
    access_token: Optional[str] = Cookie(None),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Dependency to get the authenticated admin.
    Accepts the HTTP-only cookie set at login, or a Bearer token.
    """
    token = access_token or (credentials.credentials if credentials else None)

    if not token:
        logger.warning(f"No authentication credentials provided for {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please login to access this resource.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(token)
    username = payload.get("sub")
    if username is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return {"username": username, "role": payload.get("role", ROLE_ADMIN)}


async def get_super_admin(current_admin: dict = Depends(get_current_admin)) -> dict:
    """Dependency to ensure the caller is the Super Admin"""
    if current_admin.get("role") != ROLE_SUPER_ADMIN:
        logger.warning(f"Access denied: '{current_admin.get('username')}' attempted a Super Admin operation")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super Admin access required."
        )
    return current_admin


def authenticate_admin(db: Session, username: str, password: str) -> Optional[dict]:
    """
    Authenticate the Super Admin (from .env) or an admin stored in the database.
    Returns a dict with username and role, or None.
    """
    if username == settings.ADMIN_USERNAME:
        if password == settings.ADMIN_PASSWORD:
            log_auth_attempt(username, success=True)
            return {"username": username, "role": ROLE_SUPER_ADMIN}
        log_auth_attempt(username, success=False, reason="Invalid password for Super Admin")
        return None

    from buspass.db import crud
    db_admin = crud.get_admin_by_username(db, username)

    if not db_admin:
        log_auth_attempt(username, success=False, reason="Username not found")
        return None

    if not db_admin.is_active:
        log_auth_attempt(username, success=False, reason="Account is disabled")
        return None

    if verify_password(password, db_admin.hashed_password):
        log_auth_attempt(username, success=True)
        return {"username": username, "role": ROLE_ADMIN}

    log_auth_attempt(username, success=False, reason="Invalid password")
    return None

import logging
import math
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.config import settings
from app.database import get_db
from app.errors import AuthenticationError, CooldownError, PermissionDeniedError, ValidationError
from app.models.user import UserAccount, UserRole, UserStatus
from app.services.entity_store import EntityStore
from app.utils.timezone import ensure_utc, now_utc

logger = logging.getLogger(__name__)

# HTTP Bearer token - auto_error=False so we can handle errors ourselves
security = HTTPBearer(auto_error=False)

# Password hashing context - using bcrypt with automatic salt generation
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a plain password against a hashed password."""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Password verification error: {e}. Hash format may be invalid.")
        return False

def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)

def validate_password(password: str) -> None:
    if not password or len(password) < settings.password_min_length:
        raise ValidationError(f"Password must have at least {settings.password_min_length} characters")

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = now_utc() + expires_delta
    else:
        expire = now_utc() + timedelta(minutes=settings.jwt_access_token_expire_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt

def create_token_for(account: UserAccount) -> str:
    return create_access_token(data={"sub": str(account.user_id), "role": account.role.value})

def password_change_remaining(account: UserAccount, now: Optional[datetime] = None) -> int:
    """Seconds left before the account may change its password again (0 when allowed)."""
    if account.last_password_change_at is None:
        return 0
    now = now or now_utc()
    cooldown = timedelta(minutes=settings.password_change_cooldown_minutes)
    elapsed = ensure_utc(now) - ensure_utc(account.last_password_change_at)
    remaining = cooldown - elapsed
    if remaining <= timedelta(0):
        return 0
    return math.ceil(remaining.total_seconds())

def change_password(db: Session, account: UserAccount, new_password: str, now: Optional[datetime] = None) -> UserAccount:
    """Set a new password, at most once per cooldown window."""
    now = now or now_utc()
    remaining = password_change_remaining(account, now)
    if remaining:
        minutes, seconds = divmod(remaining, 60)
        logger.warning(f"Password change for user {account.user_id} refused, {remaining}s of cooldown left")
        raise CooldownError(
            f"You can change your password again in {minutes}m {seconds:02d}s",
            remaining_seconds=remaining,
        )
    validate_password(new_password)

    updated = EntityStore(db, UserAccount).update(
        account.user_id,
        hashed_password=get_password_hash(new_password),
        last_password_change_at=now,
    )
    logger.info(f"Password changed for user {account.user_id}")
    return updated

def _user_from_token(token: Optional[str], db: Session) -> UserAccount:
    credentials_exception = AuthenticationError(
        "Could not validate credentials. Please provide a valid Authorization header with Bearer token."
    )
    if not token:
        raise credentials_exception

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        user_id_str: str = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = int(user_id_str)
    except JWTError as e:
        logger.warning(f"JWT validation error: {str(e)}")
        raise credentials_exception
    except (ValueError, TypeError) as e:
        logger.warning(f"Token parsing error: {str(e)}")
        raise credentials_exception

    user = db.get(UserAccount, user_id)
    if user is None or user.status != UserStatus.ACTIVE:
        raise credentials_exception
    return user

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> UserAccount:
    """Get current authenticated user from JWT token."""
    # Check if credentials were provided
    if credentials is None:
        auth_header = request.headers.get("Authorization")
        if auth_header:
            logger.warning(f"Authorization header present but invalid format: {auth_header[:50]}")
        else:
            logger.warning("Authorization header missing")
        return _user_from_token(None, db)
    return _user_from_token(credentials.credentials, db)

def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Optional[UserAccount]:
    """Authenticated user when a bearer token is sent, None for anonymous calls."""
    if credentials is None:
        return None
    return _user_from_token(credentials.credentials, db)

def require_librarian(current_user: UserAccount = Depends(get_current_user)) -> UserAccount:
    if current_user.role != UserRole.LIBRARIAN:
        logger.warning(f"User {current_user.user_id} attempted a librarian-only operation")
        raise PermissionDeniedError("Only librarians can perform this operation")
    return current_user

def require_member(current_user: UserAccount = Depends(get_current_user)) -> UserAccount:
    if current_user.role != UserRole.MEMBER:
        raise PermissionDeniedError("Only members can perform this operation")
    return current_user

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config
from errors import AuthError, InternalError

logger = logging.getLogger(__name__)


##########
# Security
##########
# HTTP Bearer token dependency
security = HTTPBearer(auto_error=False)


##########
# Passwords
##########
def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    """Verify password against hashed value"""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


##########
# JWT Token
##########
def create_access_token(user_id: ObjectId) -> str:
    """Create a signed token binding the user id, valid for the configured lifetime"""
    if not config.JWT_SECRET:
        raise InternalError("JWT_SECRET not configured")

    expire = datetime.now(timezone.utc) + timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"userId": str(user_id), "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    """Verify JWT token, return payload or None if invalid"""
    if not config.JWT_SECRET:
        return None
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.PyJWTError:
        return None


##########
# Identity
##########
@dataclass(frozen=True)
class Identity:
    """The caller of a request: anonymous when ``user_id`` is None."""

    user_id: Optional[ObjectId] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = Identity()


def identity_from_token(token: Optional[str]) -> Identity:
    if not token:
        return ANONYMOUS

    payload = verify_token(token)
    if not payload:
        return ANONYMOUS

    user_id = payload.get("userId")
    if not isinstance(user_id, str) or not ObjectId.is_valid(user_id):
        return ANONYMOUS
    return Identity(ObjectId(user_id))


async def resolve_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    """Return the caller's identity; never fails, degrades to anonymous"""
    token = credentials.credentials if credentials else None
    return identity_from_token(token)


async def require_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: Identity = Depends(resolve_identity),
) -> Identity:
    """Return the authenticated identity or raise 401"""
    if not credentials:
        raise AuthError("No token provided")
    if not identity.is_authenticated:
        raise AuthError("Invalid token")
    return identity

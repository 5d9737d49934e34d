"""Bearer-token verification and principal resolution."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from election_backend.core.config import settings
from election_backend.core.exceptions import Unauthenticated
from election_backend.db.session import get_db
from election_backend.models.user import User
from election_backend.services.authorization import Principal

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token (used by the CLI and tests)."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Raises:
        Unauthenticated: If the token is malformed, forged or expired.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise Unauthenticated(f"Invalid or expired token: {e}")


def resolve_principal(db: Session, claims: Dict[str, Any]) -> Principal:
    """Build the request principal from verified token claims.

    The school is read from the users table rather than trusted from the
    token, so a reassignment takes effect on the next request.
    """
    if claims.get("type", "access") != "access":
        raise Unauthenticated("Not an access token")
    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid token payload")

    row = db.query(User.id, User.school_id).filter(User.id == user_id).first()
    if row is None:
        raise Unauthenticated("Unknown user")
    return Principal(user_id=row.id, school_id=row.school_id)


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> Principal:
    """FastAPI dependency: resolve the authenticated principal of the request."""
    if credentials is None:
        raise Unauthenticated("Not authenticated")
    return resolve_principal(db, decode_token(credentials.credentials))

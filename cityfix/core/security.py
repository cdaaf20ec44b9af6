# cityfix/core/security.py
"""Password hashing, access tokens and the session-user dependencies.

Tokens carry the profile email as ``sub``; the role is always read back from
the profile row so a promotion takes effect without re-login.
"""
import time
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.hash import bcrypt_sha256
from sqlalchemy.orm import Session

from cityfix.core.config import settings
from cityfix.db.session import get_db
from cityfix.models.user import Profile, UserRole

ALGO = "HS256"
ACCESS_TTL = 24 * 3600
bearer = HTTPBearer(auto_error=False)


def hash_password(raw: str) -> str:
    return bcrypt_sha256.hash(raw)


def verify_password(raw: str, hashed: str) -> bool:
    return bcrypt_sha256.verify(raw, hashed)


def make_token(profile: Profile) -> dict:
    now = int(time.time())
    payload = {"sub": profile.email, "uid": profile.id, "iat": now, "exp": now + ACCESS_TTL}
    return {
        "access_token": jwt.encode(payload, settings.jwt_secret, algorithm=ALGO),
        "token_type": "bearer",
        "expires_in": ACCESS_TTL,
    }


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _profile_for(token: str, db: Session) -> Profile:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")
    email = payload.get("sub")
    if not email:
        raise _unauthorized("Invalid token payload")
    user = db.query(Profile).filter(Profile.email == email).first()
    if not user:
        raise _unauthorized("User not found")
    return user


def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                     db: Session = Depends(get_db)) -> Profile:
    if not creds:
        raise _unauthorized("Not authenticated")
    user = _profile_for(creds.credentials, db)
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user_inactive")
    return user


def get_optional_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                      db: Session = Depends(get_db)) -> Optional[Profile]:
    """Like get_current_user, but anonymous or bad tokens resolve to None."""
    if not creds:
        return None
    try:
        user = _profile_for(creds.credentials, db)
    except HTTPException:
        return None
    return user if user.is_active else None


def is_admin(user: Optional[Profile]) -> bool:
    return bool(user) and user.role == UserRole.admin


def require_role(*roles):
    role_values = [r.value if isinstance(r, UserRole) else r for r in roles]

    def _dep(user: Profile = Depends(get_current_user)):
        if user.role.value not in role_values:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return user
    return _dep

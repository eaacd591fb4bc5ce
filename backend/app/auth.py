"""Authentication helpers and FastAPI security dependencies.

`get_current_user` validates the bearer token (signature, expiry and
revocation) and returns the `User` from the request's session.
`require_admin` / `require_student` additionally check the role.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail='not authenticated')
    payload = decode_token(credentials.credentials)
    if not payload.get('user_id'):
        raise HTTPException(status_code=401, detail='invalid token payload')
    jti = payload.get('jti')
    if jti and repositories.TokenRepository(db).is_revoked(jti):
        raise HTTPException(status_code=401, detail='token revoked')
    return payload


def get_current_user(payload: dict = Depends(get_token_payload), db: Session = Depends(get_session)) -> models.User:
    """FastAPI dependency that returns the authenticated, active user."""
    user = repositories.UserRepository(db).get(payload['user_id'])
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    if not user.is_active:
        raise HTTPException(status_code=403, detail='Your account has been deactivated.')
    return user


def require_admin(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != 'admin':
        raise HTTPException(status_code=403, detail='Access denied. Admin privileges required.')
    return user


def require_student(user: models.User = Depends(get_current_user)) -> models.User:
    if user.role != 'student':
        raise HTTPException(status_code=403, detail='Access denied. Student privileges required.')
    return user

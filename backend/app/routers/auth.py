"""Registration, login/logout and band-level descriptors."""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session

from .. import models, schemas, services
from ..auth import get_current_user, get_token_payload
from ..config import settings
from ..database import get_session
from ..errors import to_http
from ..utils.rate_limit import LoginRateLimiter

router = APIRouter(tags=["auth"])
login_limiter = LoginRateLimiter(settings.LOGIN_RATE_LIMIT_PER_MIN, window_seconds=60)


def _token_response(user: models.User, token: str, message: str) -> dict:
    return {
        'message': message,
        'user': schemas.user_out(user),
        'access_token': token,
        'token_type': 'bearer',
    }


@router.post('/auth/register', status_code=201)
def register(payload: schemas.RegisterIn, db: Session = Depends(get_session)):
    """Create a student account and return it with an access token."""
    try:
        user, token = services.AuthService(db).register(payload)
    except ValueError as e:
        raise to_http(e)
    return _token_response(user, token, 'User registered successfully')


@router.post('/auth/login')
def login(payload: schemas.LoginIn, request: Request, db: Session = Depends(get_session)):
    """Authenticate with email and password.

    Attempts are throttled per client address and email; a successful
    login clears the counter.
    """
    client = request.client.host if request.client else 'unknown'
    key = f"{client}:{payload.email.strip().lower()}"
    allowed, retry_after = login_limiter.hit(key)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"too many login attempts; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )
    try:
        result = services.AuthService(db).authenticate(payload.email, payload.password)
    except ValueError as e:
        raise to_http(e)
    if not result:
        raise HTTPException(status_code=401, detail='invalid credentials')
    login_limiter.clear(key)
    user, token = result
    return _token_response(user, token, 'Login successful')


@router.post('/auth/logout')
def logout(payload: dict = Depends(get_token_payload), db: Session = Depends(get_session)):
    services.AuthService(db).logout(payload)
    return {'message': 'Successfully logged out'}


@router.get('/auth/user')
def current_user(user: models.User = Depends(get_current_user)):
    return {'user': schemas.user_out(user)}


@router.post('/auth/check-availability')
def check_availability(payload: schemas.AvailabilityIn, db: Session = Depends(get_session)):
    available = services.AuthService(db).is_available(payload.field, payload.value)
    return {'available': available}


@router.get('/band-levels')
def band_levels():
    return {
        'band_levels': [
            {'value': value, 'label': label, 'description': description}
            for value, (label, description) in schemas.BAND_DESCRIPTORS.items()
        ]
    }

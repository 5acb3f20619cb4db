import os
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from . import config

logger = logging.getLogger(__name__)

# config
# SECRET_KEY should be set in the environment in production. We fall back to a
# predictable value for local testing; the app lifespan refuses to start with it.
INSECURE_SECRET_KEY = "CHANGE_ME_IN_ENV_FOR_TESTS"
SECRET_KEY = os.getenv("SECRET_KEY", INSECURE_SECRET_KEY)
ALGORITHM = "HS256"
CSRF_TOKEN_EXPIRE_MINUTES = 60 * 24


def _session_subject(session_token: str) -> str:
    # CSRF tokens end up in page markup; never embed the raw session token
    return hashlib.sha256(session_token.encode('utf-8')).hexdigest()[:32]


def create_csrf_token(session_token: str, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = {"sub": _session_subject(session_token), "type": "csrf"}
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=CSRF_TOKEN_EXPIRE_MINUTES)
    # Use numeric epoch seconds for exp to avoid library-specific serialization
    to_encode.update({"exp": int(expire.timestamp())})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_csrf_token(token: Optional[str], session_token: str) -> bool:
    if not token:
        logger.info('verify_csrf_token failed: token missing')
        return False
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info('verify_csrf_token JWTError: %s', str(e))
        return False
    if payload.get("type") != "csrf":
        logger.info('verify_csrf_token failed: type mismatch (expected csrf, got %s)', payload.get('type'))
        return False
    if payload.get("sub") != _session_subject(session_token):
        logger.info('verify_csrf_token failed: token issued for another session')
        return False
    return True


async def require_csrf(request: Request) -> None:
    """Dependency rejecting POSTs whose CSRF token does not match the session.

    The token is read from the `_csrf` form field, falling back to the
    X-CSRF-Token header for script-driven requests.
    """
    if not config.CSRF_ENABLED:
        return
    token = request.headers.get('X-CSRF-Token')
    if not token:
        form = await request.form()
        token = form.get('_csrf')
    session_token = getattr(request.state, 'session_token', None)
    if not session_token or not verify_csrf_token(token, session_token):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='invalid csrf token')

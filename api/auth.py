"""
Authentication for the FastAPI API: password hashing, JWT issuance and the
bearer-token guard that protects every user-scoped endpoint.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
import structlog
from fastapi import HTTPException, Request, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from werkzeug.security import generate_password_hash, check_password_hash

from api.config import config

logger = structlog.get_logger(__name__)

# auto_error=False: a missing or non-Bearer header means "no credential", not a 403
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Create a salted pbkdf2:sha256 password digest."""
    return generate_password_hash(password, method="pbkdf2:sha256")


def verify_password(password_digest: str, password: str) -> bool:
    if not password_digest or not password:
        return False
    return check_password_hash(password_digest, password)


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """
    Issue a signed access token for a user.

    Args:
        user_id: Identifier stored in the user_id claim
        expires_minutes: Lifetime override; defaults to the configured expiry

    Returns:
        Encoded JWT
    """
    lifetime = expires_minutes if expires_minutes is not None else config.access_token_expire_minutes
    payload = {
        "user_id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=lifetime),
    }
    return jwt.encode(payload, config.secret_key, algorithm=config.algorithm)


def decode_access_token(token: str) -> Optional[str]:
    """
    Validate a token and return its user id.

    Returns:
        The user_id claim, or None if the token is expired, tampered with,
        malformed, or carries no user id
    """
    if not token:
        return None

    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.algorithm])
    except jwt.ExpiredSignatureError:
        logger.info("Expired access token presented")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid access token presented", error=str(e))
        return None

    user_id = payload.get("user_id")
    return str(user_id) if user_id else None


def unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict:
    """
    Resolve the authenticated user from the Authorization header.

    Args:
        request: Incoming request; current_user_id is set on its state
        credentials: Bearer credentials, if any were sent

    Returns:
        User document (without password digest)

    Raises:
        HTTPException: 401 when the credential is missing, invalid, or names
            a user that no longer exists
    """
    if credentials is None:
        raise unauthorized()

    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise unauthorized()

    from api.main import db_service

    if db_service is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )

    user = await db_service.get_user_by_id(user_id)
    if not user:
        logger.warning("Token for unknown user", user_id=user_id)
        raise unauthorized()

    request.state.current_user_id = user["id"]
    structlog.contextvars.bind_contextvars(user_id=user["id"])
    return user

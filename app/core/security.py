from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request, Response
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from app.core.config import settings
from app.core.constants import AUTH_COOKIE_NAME, ERROR_MESSAGES
from app.core.exceptions import AuthenticationError, ClinicError, ForbiddenError
from app.core.logger import logger
from app.models.auth import Principal, Role


def issue_token(payload: Dict[str, Any]) -> str:
    """
    Signs {id, username, role} with JWT_SECRET.
    Lifetime comes from JWT_EXPIRATION (24h by default).
    """
    now = datetime.now(timezone.utc)
    claims = {
        "id": str(payload["id"]),
        "sub": str(payload["id"]),
        "username": payload["username"],
        "role": payload["role"],
        "iat": now,
        "exp": now + settings.token_lifetime,
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Principal:
    """
    Stateless signature + expiry check.

    Raises:
        AuthenticationError (401, TOKEN_EXPIRED) for an expired token
        ForbiddenError (403, TOKEN_INVALID) for anything else that fails
    """
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthenticationError(ERROR_MESSAGES["TOKEN_EXPIRED"], code="TOKEN_EXPIRED")
    except JWTError:
        raise ForbiddenError(ERROR_MESSAGES["TOKEN_INVALID"], code="TOKEN_INVALID")

    try:
        return Principal(id=claims.get("id") or claims.get("sub"), username=claims.get("username"), role=claims.get("role"))
    except PydanticValidationError:
        raise ForbiddenError(ERROR_MESSAGES["TOKEN_INVALID"], code="TOKEN_INVALID")


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=int(settings.token_lifetime.total_seconds()),
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="strict",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        path="/",
        domain=settings.COOKIE_DOMAIN,
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="strict",
    )


def extract_token(request: Request) -> Optional[str]:
    """Authorization header wins over the session cookie."""
    header = request.headers.get("authorization")
    if header:
        scheme, _, credentials = header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    return request.cookies.get(AUTH_COOKIE_NAME) or None


async def authenticate(request: Request) -> Principal:
    token = extract_token(request)
    if not token:
        raise AuthenticationError(ERROR_MESSAGES["TOKEN_MISSING"], code="TOKEN_MISSING")

    try:
        principal = verify_token(token)
    except ClinicError:
        raise
    except Exception as e:
        logger.exception(f"❌ Token verification failed unexpectedly: {e}")
        raise ClinicError(ERROR_MESSAGES["AUTH_ERROR"])

    request.state.user = principal
    return principal


def require_role(*roles: Role) -> Callable:
    allowed = {Role(role) for role in roles}

    async def dependency(principal: Principal = Depends(authenticate)) -> Principal:
        if principal.role not in allowed:
            logger.warning(f"⛔ Role '{principal.role.value}' denied for user {principal.username}")
            raise ForbiddenError(ERROR_MESSAGES["FORBIDDEN"], code="FORBIDDEN")
        return principal

    return dependency


require_admin = require_role(Role.ADMIN, Role.SUPERADMIN)

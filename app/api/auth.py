from fastapi import APIRouter, Depends, Request, Response

from app.core.constants import ERROR_MESSAGES, SUCCESS_MESSAGES
from app.core.exceptions import AuthenticationError, ValidationError
from app.core.logger import logger
from app.core.rate_limit import RateLimiter, rate_limit
from app.core.security import authenticate, clear_session_cookie, issue_token, set_session_cookie
from app.core.validation import sanitize_string
from app.models.auth import LoginRequest, Principal
from app.services.db_service import db_service

router = APIRouter(prefix="/auth")


@router.post("/login")
async def login(
    req: LoginRequest,
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(rate_limit("auth")),
):
    if not req.username or not req.password:
        raise ValidationError(ERROR_MESSAGES["CREDENTIALS_REQUIRED"], required=["username", "password"])

    username = sanitize_string(req.username)
    user = await db_service.authenticate_user(username, req.password)
    if not user or not user.get("success"):
        logger.warning(f"🔒 Failed login for '{username}'")
        raise AuthenticationError(ERROR_MESSAGES["INVALID_CREDENTIALS"], code="INVALID_CREDENTIALS")

    token = issue_token({"id": user["user_id"], "username": user["username"], "role": user["role"]})
    set_session_cookie(response, token)
    # Successful logins do not count against the auth limiter
    await limiter.forget(request)

    logger.info(f"🔓 User '{user['username']}' logged in ({user['role']})")
    return {
        "success": True,
        "message": SUCCESS_MESSAGES["LOGIN_SUCCESS"],
        "token": token,
        "user": {
            "id": user["user_id"],
            "username": user["username"],
            "full_name": user.get("full_name"),
            "role": user["role"],
        },
    }


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"success": True, "message": SUCCESS_MESSAGES["LOGOUT_SUCCESS"]}


@router.get("/verify")
async def verify(principal: Principal = Depends(authenticate)):
    return {
        "success": True,
        "user": {"id": principal.id, "username": principal.username, "role": principal.role.value},
    }

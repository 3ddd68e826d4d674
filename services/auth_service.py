# snapcaption_backend/services/auth_service.py
import datetime
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt
from fastapi import HTTPException, Request, Response

from config import (
    AUTH_COOKIE_NAME,
    IS_PRODUCTION,
    JWT_ALGORITHM,
    JWT_SECRET,
    TOKEN_EXPIRES_SECONDS,
    logger,
)
from database import users_collection
from services.common_utils import to_object_id, utc_now


# --- Passwords ---

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=10)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("[AUTH] Stored password hash is malformed")
        return False


# --- Tokens ---

def create_access_token(
    user_id: Any, now: Optional[datetime.datetime] = None
) -> Tuple[str, datetime.datetime]:
    """Issues a token valid for a fixed hour; returns (token, expiry)."""
    issued_at = now or utc_now()
    expires_at = issued_at + datetime.timedelta(seconds=TOKEN_EXPIRES_SECONDS)
    token = jwt.encode(
        {"id": str(user_id), "iat": issued_at, "exp": expires_at},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
    return token, expires_at


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


def extract_token(request: Request) -> Optional[str]:
    """Looks for a token in the cookie, then Authorization: Bearer, then x-auth-token."""
    token = request.cookies.get(AUTH_COOKIE_NAME)

    if not token:
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[len("Bearer "):]

    if not token:
        token = request.headers.get("x-auth-token")

    return token or None


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="none" if IS_PRODUCTION else "lax",
        secure=IS_PRODUCTION,
        max_age=TOKEN_EXPIRES_SECONDS,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        httponly=True,
        samesite="none" if IS_PRODUCTION else "lax",
        secure=IS_PRODUCTION,
    )


def _unauthorized(message: str, code: Optional[str] = None) -> HTTPException:
    detail = {"message": message}
    if code:
        detail["code"] = code
    return HTTPException(status_code=401, detail=detail)


async def find_user_by_token(token: str) -> Optional[Dict[str, Any]]:
    """Returns the token's user ({_id, username}) or None; token errors propagate."""
    decoded = decode_access_token(token)
    user_id = to_object_id(decoded.get("id"))
    if user_id is None:
        raise jwt.InvalidTokenError("Token subject is not a valid id")
    return await users_collection.find_one({"_id": user_id}, {"_id": 1, "username": 1})


# --- FastAPI dependencies ---

async def get_current_user(request: Request) -> Dict[str, Any]:
    token = extract_token(request)
    if not token:
        raise _unauthorized("Unauthorized", "NO_TOKEN")

    try:
        user = await find_user_by_token(token)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired", "TOKEN_EXPIRED")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token", "INVALID_TOKEN")
    except Exception:
        logger.error("[AUTH] Authentication failed", exc_info=True)
        raise _unauthorized("Authentication failed", "AUTH_FAILED")

    if not user:
        raise _unauthorized("User not found")

    return user


async def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    if not extract_token(request):
        return None
    try:
        return await get_current_user(request)
    except HTTPException:
        return None

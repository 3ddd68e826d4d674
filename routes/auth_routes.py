# snapcaption_backend/routes/auth_routes.py
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pymongo.errors import DuplicateKeyError

from config import AUTH_COOKIE_NAME, logger
from database import users_collection
from models.common_models import LoginRequest, RegisterUserRequest
from services.auth_service import (
    clear_auth_cookie,
    create_access_token,
    find_user_by_token,
    get_current_user,
    hash_password,
    set_auth_cookie,
    verify_password,
)
from services.common_utils import convert_object_ids
from services.rate_limiter import auth_limiter, user_status_limiter
from services.user_service import new_user_document
from services.validation import (
    validate_login_input,
    validate_register_input,
    validation_failed,
)

router = APIRouter()


def _auth_payload(message: str, user_id: Any, username: str, token: str, expires_at) -> Dict[str, Any]:
    return {
        "message": message,
        "user": {"_id": str(user_id), "username": username},
        "token": token,  # also returned for cross-origin clients that cannot read the cookie
        "tokenExpiry": expires_at.isoformat(),
    }


# --- 1. Register ---
@router.post("/register", status_code=201, dependencies=[Depends(auth_limiter)])
async def register_endpoint(request: RegisterUserRequest, response: Response):
    username = request.username.strip() if isinstance(request.username, str) else request.username
    errors = validate_register_input(username, request.password)
    if errors:
        raise validation_failed(errors)

    existing_user = await users_collection.find_one({"username": username})
    if existing_user:
        raise HTTPException(status_code=409, detail="User already exists")

    user_doc = new_user_document(username, hash_password(request.password))
    try:
        result = await users_collection.insert_one(user_doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="User already exists")

    token, expires_at = create_access_token(result.inserted_id)
    set_auth_cookie(response, token)

    logger.info(f"User registered: {username} (ID: {result.inserted_id})")
    return _auth_payload("User registered successfully", result.inserted_id, username, token, expires_at)


# --- 2. Login ---
@router.post("/login", dependencies=[Depends(auth_limiter)])
async def login_endpoint(request: LoginRequest, response: Response):
    errors = validate_login_input(request.username, request.password)
    if errors:
        raise validation_failed(errors)

    username = request.username.strip()
    logger.info(f"Login attempt for username: {username}")

    user = await users_collection.find_one({"username": username})
    if not user:
        logger.info(f"User not found: {username}")
        raise HTTPException(status_code=401, detail="Invalid username or user not found")

    if not verify_password(request.password, user.get("password", "")):
        logger.info(f"Invalid password for user: {username}")
        raise HTTPException(status_code=401, detail="Invalid password")

    token, expires_at = create_access_token(user["_id"])
    set_auth_cookie(response, token)

    logger.info(f"Login successful for user: {username}")
    return _auth_payload("Login successful", user["_id"], user["username"], token, expires_at)


# --- 3. Logout ---
@router.post("/logout")
async def logout_endpoint(response: Response, user: Dict[str, Any] = Depends(get_current_user)):
    clear_auth_cookie(response)
    logger.info(f"User logged out: {user.get('username')}")
    return {"message": "Logged out"}


# --- 4. Session status (cookie only, never fails) ---
@router.get("/user", dependencies=[Depends(user_status_limiter)])
async def current_user_endpoint(request: Request):
    token = request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        return {"user": None, "authenticated": False}

    try:
        user = await find_user_by_token(token)
    except Exception:
        return {"user": None, "authenticated": False}

    if not user:
        return {"user": None, "authenticated": False}
    return {"user": convert_object_ids(user), "authenticated": True}

"""Tests for password hashing, JWT handling and the auth dependencies

The dependencies are mounted on a small FastAPI app so that token lookup
(cookie, Bearer header, x-auth-token header) is exercised through real
requests.
"""

import datetime
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from bson import ObjectId
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from config import JWT_ALGORITHM, JWT_SECRET, TOKEN_EXPIRES_SECONDS
from services import auth_service
from services.auth_service import (
    create_access_token,
    decode_access_token,
    get_current_user,
    get_optional_user,
    hash_password,
    verify_password,
)
from services.common_utils import utc_now

USER_ID = ObjectId()
USER = {"_id": USER_ID, "username": "snapper"}


def create_test_app():
    app = FastAPI()

    @app.get("/protected")
    async def protected(user: Dict[str, Any] = Depends(get_current_user)):
        return {"username": user["username"]}

    @app.get("/optional")
    async def optional(user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
        return {"username": user["username"] if user else None}

    return app


@pytest.fixture
def users(monkeypatch):
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=USER)
    monkeypatch.setattr(auth_service, "users_collection", collection)
    return collection


@pytest.fixture
def client():
    return TestClient(create_test_app())


def test_password_hash_round_trip():
    hashed = hash_password("Passw0rd")

    assert hashed != "Passw0rd"
    assert verify_password("Passw0rd", hashed) is True
    assert verify_password("passw0rd", hashed) is False


def test_malformed_hash_does_not_verify():
    assert verify_password("Passw0rd", "not-a-bcrypt-hash") is False


def test_token_carries_id_and_one_hour_expiry():
    issued = utc_now().replace(microsecond=0)

    token, expires_at = create_access_token(USER_ID, now=issued)

    assert expires_at - issued == datetime.timedelta(seconds=TOKEN_EXPIRES_SECONDS)
    claims = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    assert claims["id"] == str(USER_ID)
    assert claims["exp"] == int(expires_at.timestamp())


def test_expired_token_fails_to_decode():
    token, _ = create_access_token(USER_ID, now=utc_now() - datetime.timedelta(hours=2))

    with pytest.raises(jwt.ExpiredSignatureError):
        decode_access_token(token)


def test_missing_token(client, users):
    response = client.get("/protected")

    assert response.status_code == 401
    assert response.json()["detail"] == {"message": "Unauthorized", "code": "NO_TOKEN"}


@pytest.mark.parametrize("transport", ["cookie", "bearer", "x-auth-token"])
def test_token_accepted_from_each_location(client, users, transport):
    token, _ = create_access_token(USER_ID)
    headers = {}
    if transport == "cookie":
        headers["Cookie"] = f"token={token}"
    elif transport == "bearer":
        headers["Authorization"] = f"Bearer {token}"
    else:
        headers["x-auth-token"] = token

    response = client.get("/protected", headers=headers)

    assert response.status_code == 200
    assert response.json() == {"username": "snapper"}
    users.find_one.assert_awaited_once_with({"_id": USER_ID}, {"_id": 1, "username": 1})


def test_expired_token_rejected(client, users):
    token, _ = create_access_token(USER_ID, now=utc_now() - datetime.timedelta(hours=2))

    response = client.get("/protected", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == {"message": "Token expired", "code": "TOKEN_EXPIRED"}


def test_tampered_token_rejected(client, users):
    token = jwt.encode({"id": str(USER_ID)}, "some-other-secret-that-is-long-enough-123", algorithm="HS256")

    response = client.get("/protected", headers={"Authorization": f"Bearer {token}"})

    assert response.json()["detail"]["code"] == "INVALID_TOKEN"


def test_token_with_bad_subject_rejected(client, users):
    token = jwt.encode({"id": "not-an-object-id"}, JWT_SECRET, algorithm=JWT_ALGORITHM)

    response = client.get("/protected", headers={"x-auth-token": token})

    assert response.json()["detail"]["code"] == "INVALID_TOKEN"
    users.find_one.assert_not_called()


def test_database_failure_reported_as_auth_failed(client, users):
    users.find_one.side_effect = RuntimeError("mongo unavailable")
    token, _ = create_access_token(USER_ID)

    response = client.get("/protected", headers={"x-auth-token": token})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "AUTH_FAILED"


def test_deleted_user_rejected(client, users):
    users.find_one.return_value = None
    token, _ = create_access_token(USER_ID)

    response = client.get("/protected", headers={"x-auth-token": token})

    assert response.status_code == 401
    assert response.json()["detail"] == {"message": "User not found"}


def test_optional_user(client, users):
    assert client.get("/optional").json() == {"username": None}
    assert client.get("/optional", headers={"x-auth-token": "garbage"}).json() == {"username": None}

    token, _ = create_access_token(USER_ID)
    assert client.get("/optional", headers={"x-auth-token": token}).json() == {"username": "snapper"}

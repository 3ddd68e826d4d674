# snapcaption_backend/services/user_service.py

import time
from typing import Any, Dict, Optional

from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from config import logger
from database import users_collection
from models.common_models import Preferences
from services.cloudinary_service import delete_image, upload_image
from services.common_utils import convert_object_ids, utc_now

# Never send the password hash back to clients.
PUBLIC_USER_PROJECTION = {"password": 0}


def new_user_document(username: str, password_hash: str) -> Dict[str, Any]:
    now = utc_now()
    return {
        "username": username,
        "password": password_hash,
        "profilePicture": None,
        "profilePictureFileId": None,
        "preferences": Preferences().model_dump(mode="json"),
        "stats": {"totalPosts": 0, "totalLikes": 0, "joinedAt": now},
        "createdAt": now,
        "updatedAt": now,
    }


async def _update_user(user_id: Any, update: Dict[str, Any]) -> Dict[str, Any]:
    update["updatedAt"] = utc_now()
    try:
        user = await users_collection.find_one_and_update(
            {"_id": user_id},
            {"$set": update},
            projection=PUBLIC_USER_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="Username already taken")
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return convert_object_ids(user)


async def get_profile(user_id: Any) -> Dict[str, Any]:
    user = await users_collection.find_one({"_id": user_id}, PUBLIC_USER_PROJECTION)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return convert_object_ids(user)


async def update_profile(
    user_id: Any, username: Optional[str] = None, preferences: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    update: Dict[str, Any] = {}
    if username:
        update["username"] = username
    if preferences:
        update["preferences"] = preferences
    return await _update_user(user_id, update)


async def update_preferences(user_id: Any, preferences: Dict[str, Any]) -> Dict[str, Any]:
    """Sets only the given preference fields, leaving the rest untouched."""
    update = {
        f"preferences.{key}": value
        for key, value in preferences.items()
        if value is not None
    }
    return await _update_user(user_id, update)


async def _delete_old_picture(user_id: Any) -> None:
    current = await users_collection.find_one({"_id": user_id}, {"profilePictureFileId": 1})
    file_id = (current or {}).get("profilePictureFileId")
    if not file_id:
        return
    try:
        await delete_image(file_id)
    except Exception as e:
        logger.error(f"Error deleting old profile picture: {e}")


async def upload_profile_picture(user_id: Any, file_bytes: bytes) -> Dict[str, Any]:
    await _delete_old_picture(user_id)

    file_name = f"profile_{user_id}_{int(time.time() * 1000)}"
    upload = await upload_image(file_bytes, file_name)

    return await _update_user(user_id, {
        "profilePicture": upload["url"],
        "profilePictureFileId": upload["file_id"],
    })


async def delete_profile_picture(user_id: Any) -> Dict[str, Any]:
    await _delete_old_picture(user_id)
    return await _update_user(user_id, {
        "profilePicture": None,
        "profilePictureFileId": None,
    })

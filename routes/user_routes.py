# snapcaption_backend/routes/user_routes.py

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from config import ALLOWED_IMAGE_TYPES, MAX_PROFILE_PICTURE_BYTES, logger
from models.common_models import PreferencesUpdateRequest, ProfileUpdateRequest
from services import user_service
from services.auth_service import get_current_user
from services.validation import validation_failed

router = APIRouter()


@router.get("/profile", response_model=Dict[str, Any])
async def get_profile_endpoint(user: Dict[str, Any] = Depends(get_current_user)):
    try:
        return {"user": await user_service.get_profile(user["_id"])}
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to get user profile", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get user profile")


@router.put("/profile", response_model=Dict[str, Any])
async def update_profile_endpoint(
    request: ProfileUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        updated = await user_service.update_profile(
            user["_id"],
            username=request.username.strip() if request.username else None,
            preferences=request.preferences.model_dump(mode="json") if request.preferences else None,
        )
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to update profile", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update profile")

    return {"message": "Profile updated successfully", "user": updated}


@router.post("/profile-picture", response_model=Dict[str, Any])
async def upload_profile_picture_endpoint(
    profilePicture: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Depends(get_current_user),
):
    if profilePicture is None:
        raise HTTPException(status_code=400, detail="Profile picture file is required")

    contents = await profilePicture.read()
    errors = []
    if profilePicture.content_type not in ALLOWED_IMAGE_TYPES:
        errors.append("Invalid file type. Only JPEG, PNG, and WebP are allowed")
    if len(contents) > MAX_PROFILE_PICTURE_BYTES:
        errors.append("File too large. Maximum size is 2MB")
    if errors:
        raise validation_failed(errors)

    try:
        updated = await user_service.upload_profile_picture(user["_id"], contents)
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to upload profile picture", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to upload profile picture")

    return {"message": "Profile picture updated successfully", "user": updated}


@router.delete("/profile-picture", response_model=Dict[str, Any])
async def delete_profile_picture_endpoint(user: Dict[str, Any] = Depends(get_current_user)):
    try:
        updated = await user_service.delete_profile_picture(user["_id"])
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to delete profile picture", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete profile picture")

    return {"message": "Profile picture deleted successfully", "user": updated}


@router.put("/preferences", response_model=Dict[str, Any])
async def update_preferences_endpoint(
    request: PreferencesUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        updated = await user_service.update_preferences(
            user["_id"], request.model_dump(exclude_none=True, mode="json")
        )
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to update preferences", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update preferences")

    return {"message": "Preferences updated successfully", "user": updated}

# snapcaption_backend/routes/post_routes.py

from typing import Any, Dict, Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    UploadFile,
)

from config import APP_ENV, logger
from models.common_models import BulkUpdateRequest, Category, PostUpdateRequest
from services import post_service
from services.auth_service import get_current_user, get_optional_user
from services.rate_limiter import post_limiter
from services.validation import sanitize_text, validate_post_input, validation_failed

router = APIRouter()


# -------------------------------------------------------
# List posts (own feed when authenticated, public otherwise)
# -------------------------------------------------------
@router.get("/", response_model=Dict[str, Any])
async def list_posts_endpoint(
    search: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[str] = None,
    sortBy: str = "createdAt",
    order: str = "desc",
    page: int = 1,
    limit: int = 50,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    try:
        return await post_service.list_posts(
            user=user,
            search=search,
            category=category,
            tags=tags,
            sort_by=sortBy,
            order=order,
            page=page,
            limit=limit,
        )
    except Exception:
        logger.error("❌ Failed to list posts", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load posts")


# -------------------------------------------------------
# Shared post (public link)
# -------------------------------------------------------
@router.get("/shared/{post_id}", response_model=Dict[str, Any])
async def shared_post_endpoint(post_id: str):
    try:
        post = await post_service.get_shared_post(post_id)
        return {"success": True, "data": {"post": post}}
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to get shared post", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get shared post")


# -------------------------------------------------------
# Stats
# -------------------------------------------------------
@router.get("/stats", response_model=Dict[str, Any])
async def user_stats_endpoint(user: Dict[str, Any] = Depends(get_current_user)):
    try:
        return await post_service.get_user_stats(user)
    except Exception:
        logger.error("❌ Failed to get user statistics", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to get user statistics")


# -------------------------------------------------------
# Create a post from an uploaded image
# -------------------------------------------------------
@router.post("/", status_code=201, dependencies=[Depends(post_limiter)])
async def create_post_endpoint(
    image: Optional[UploadFile] = File(None),
    vibe: Optional[str] = Form(None),
    extraPrompt: Optional[str] = Form(None),
    language: str = Form("en"),
    category: Category = Form(Category.Personal),
    tags: Optional[str] = Form(None),
    isPublic: bool = Form(False),
    user: Dict[str, Any] = Depends(get_current_user),
):
    contents = await image.read() if image else b""

    errors = validate_post_input(
        content_type=image.content_type if image else None,
        size=len(contents),
        vibe=vibe,
        extra_prompt=extraPrompt,
        has_file=image is not None,
    )
    if errors:
        raise validation_failed(errors)

    try:
        post = await post_service.create_post(
            user,
            contents,
            content_type=image.content_type,
            vibe=sanitize_text(vibe),
            extra_prompt=sanitize_text(extraPrompt),
            language=language,
            category=category.value,
            tags=tags,
            is_public=isPublic,
        )
    except Exception as e:
        logger.error("❌ Post creation error", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "message": "Failed to create post",
                "error": str(e) if APP_ENV == "development" else "Internal server error",
            },
        )

    return {"message": "Post created successfully", "post": post}


# -------------------------------------------------------
# Bulk update (must be declared before /{post_id})
# -------------------------------------------------------
@router.put("/bulk", response_model=Dict[str, Any])
async def bulk_update_endpoint(
    request: BulkUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
):
    if not request.postIds:
        raise HTTPException(status_code=400, detail="Post IDs are required")

    try:
        modified = await post_service.bulk_update_posts(
            user,
            request.postIds,
            request.updates.model_dump(exclude_none=True, mode="json"),
        )
    except Exception:
        logger.error("❌ Failed to bulk update posts", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update posts")

    return {
        "message": f"Successfully updated {modified} posts",
        "modifiedCount": modified,
    }


@router.put("/{post_id}", response_model=Dict[str, Any])
async def update_post_endpoint(
    post_id: str,
    request: PostUpdateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        post = await post_service.update_post(
            user, post_id, request.model_dump(exclude_none=True, mode="json")
        )
    except HTTPException:
        raise
    except Exception:
        logger.error("❌ Failed to update post", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update post")

    return {"message": "Post updated successfully", "post": post}


# -------------------------------------------------------
# Delete
# -------------------------------------------------------
@router.delete("/", response_model=Dict[str, Any])
async def delete_all_posts_endpoint(
    background_tasks: BackgroundTasks,
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        deleted, file_ids = await post_service.delete_all_posts(user)
    except Exception:
        logger.error("❌ Failed to delete posts", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete posts")

    if not deleted:
        return {"message": "No posts to delete", "deletedCount": 0}

    # image cleanup must not hold up the response
    background_tasks.add_task(post_service.delete_images_quietly, file_ids)

    return {"message": "All posts deleted successfully", "deletedCount": deleted}


@router.delete("/{post_id}", response_model=Dict[str, Any])
async def delete_post_endpoint(
    post_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
):
    deleted_id = await post_service.delete_post(user, post_id)
    return {"message": "Post deleted", "id": deleted_id}

# snapcaption_backend/services/post_service.py

import asyncio
import math
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException
from pymongo import ReturnDocument

from config import logger
from database import posts_collection, users_collection
from models.common_models import Category
from services.ai_service import generate_caption
from services.cloudinary_service import delete_image, upload_image
from services.common_utils import convert_object_ids, parse_tags, to_object_id, utc_now

DEFAULT_CATEGORY = Category.Personal.value
MIN_CAPTION_LENGTH = 5
SORTABLE_FIELDS = {"createdAt", "updatedAt", "likes", "category", "caption"}
MAX_PAGE_SIZE = 100


# -------------------------------------------------------
# Query helpers
# -------------------------------------------------------

def build_post_query(
    user_id: Any = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    tags: Any = None,
    public_only: bool = False,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}

    if user_id is not None:
        query["user"] = user_id
    elif public_only:
        query["isPublic"] = True

    if search:
        query["$text"] = {"$search": search}

    if category and category != "all":
        query["category"] = category

    tag_list = parse_tags(tags)
    if tag_list:
        query["tags"] = {"$in": tag_list}

    return query


def build_pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    return {
        "currentPage": page,
        "totalPages": math.ceil(total / limit) if limit else 0,
        "totalPosts": total,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


def generate_file_name() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


async def _attach_users(posts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replaces each post's user id with {_id, username, profilePicture}."""
    user_ids = list({p["user"] for p in posts if p.get("user") is not None})
    if not user_ids:
        return posts

    users = await users_collection.find(
        {"_id": {"$in": user_ids}},
        {"username": 1, "profilePicture": 1}
    ).to_list(length=None)
    by_id = {u["_id"]: u for u in users}

    for post in posts:
        post["user"] = by_id.get(post.get("user"), {"_id": post.get("user")})
    return posts


# -------------------------------------------------------
# Create
# -------------------------------------------------------

async def create_post(
    user: Dict[str, Any],
    image_bytes: bytes,
    content_type: str = "image/jpeg",
    vibe: Optional[str] = None,
    extra_prompt: Optional[str] = None,
    language: str = "en",
    category: str = DEFAULT_CATEGORY,
    tags: Any = None,
    is_public: bool = False,
) -> Dict[str, Any]:
    """
    Captions and stores an uploaded image as a new post.

    The AI caption call and the image upload run concurrently; if either
    fails the exception propagates and nothing is persisted.
    """
    file_name = generate_file_name()

    caption, upload = await asyncio.gather(
        generate_caption(
            image_bytes,
            vibe=vibe or "Fun",
            extra_prompt=extra_prompt or "",
            language=language,
            content_type=content_type,
        ),
        upload_image(image_bytes, file_name),
    )

    if not caption or len(caption.strip()) < MIN_CAPTION_LENGTH:
        raise ValueError("Failed to generate valid caption")

    now = utc_now()
    post_doc = {
        "caption": caption,
        "image": upload["url"],
        "imageFileId": upload["file_id"],
        "user": user["_id"],
        "category": category or DEFAULT_CATEGORY,
        "tags": parse_tags(tags),
        "vibeStyle": vibe,
        "isPublic": bool(is_public),
        "likes": 0,
        "createdAt": now,
        "updatedAt": now,
    }

    result = await posts_collection.insert_one(post_doc)
    await users_collection.update_one(
        {"_id": user["_id"]}, {"$inc": {"stats.totalPosts": 1}}
    )

    logger.info(
        f"📌 Post created | user={user.get('username')} | vibe={vibe} | category={post_doc['category']}"
    )

    return convert_object_ids({
        "_id": result.inserted_id,
        "caption": caption,
        "image": post_doc["image"],
        "category": post_doc["category"],
        "tags": post_doc["tags"],
        "vibeStyle": vibe,
        "isPublic": post_doc["isPublic"],
        "createdAt": now,
        "user": {"_id": user["_id"], "username": user.get("username")},
    })


# -------------------------------------------------------
# Read
# -------------------------------------------------------

async def list_posts(
    user: Optional[Dict[str, Any]] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    tags: Any = None,
    sort_by: str = "createdAt",
    order: str = "desc",
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    sort_field = sort_by if sort_by in SORTABLE_FIELDS else "createdAt"
    direction = -1 if order == "desc" else 1

    query = build_post_query(
        user_id=user["_id"] if user else None,
        search=search,
        category=category,
        tags=tags,
        public_only=user is None,
    )

    cursor = (
        posts_collection.find(query)
        .sort(sort_field, direction)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    posts = await cursor.to_list(length=limit)
    total = await posts_collection.count_documents(query)

    posts = await _attach_users(posts)

    return {
        "posts": [convert_object_ids(p) for p in posts],
        "pagination": build_pagination(page, limit, total),
    }


async def get_shared_post(post_id: str) -> Dict[str, Any]:
    oid = to_object_id(post_id)
    post = await posts_collection.find_one({"_id": oid}) if oid else None
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")

    owner = await users_collection.find_one({"_id": post["user"]}, {"username": 1})
    post["user"] = owner or {"_id": post["user"]}
    return convert_object_ids(post)


async def _get_owned_post(user: Dict[str, Any], post_id: str) -> Dict[str, Any]:
    oid = to_object_id(post_id)
    post = await posts_collection.find_one({"_id": oid}) if oid else None
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    if str(post["user"]) != str(user["_id"]):
        raise HTTPException(status_code=403, detail="Forbidden")
    return post


# -------------------------------------------------------
# Update
# -------------------------------------------------------

async def update_post(user: Dict[str, Any], post_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    post = await _get_owned_post(user, post_id)

    update_data: Dict[str, Any] = {}
    if updates.get("caption") is not None:
        update_data["caption"] = updates["caption"]
    if updates.get("category") is not None:
        update_data["category"] = updates["category"]
    if updates.get("tags") is not None:
        update_data["tags"] = parse_tags(updates["tags"])
    if updates.get("isPublic") is not None:
        update_data["isPublic"] = updates["isPublic"]
    update_data["updatedAt"] = utc_now()

    updated = await posts_collection.find_one_and_update(
        {"_id": post["_id"]},
        {"$set": update_data},
        return_document=ReturnDocument.AFTER,
    )
    updated = (await _attach_users([updated]))[0]
    return convert_object_ids(updated)


async def bulk_update_posts(
    user: Dict[str, Any], post_ids: List[str], updates: Dict[str, Any]
) -> int:
    """Applies updates to the caller's posts among post_ids; returns the modified count."""
    object_ids = [oid for oid in (to_object_id(pid) for pid in post_ids) if oid]

    update_data: Dict[str, Any] = {}
    if updates.get("category"):
        update_data["category"] = updates["category"]
    if updates.get("tags"):
        update_data["tags"] = parse_tags(updates["tags"])
    if updates.get("isPublic") is not None:
        update_data["isPublic"] = updates["isPublic"]

    if not object_ids or not update_data:
        return 0

    update_data["updatedAt"] = utc_now()
    result = await posts_collection.update_many(
        {"_id": {"$in": object_ids}, "user": user["_id"]},
        {"$set": update_data},
    )
    return result.modified_count


# -------------------------------------------------------
# Delete
# -------------------------------------------------------

async def delete_images_quietly(file_ids: List[str]) -> None:
    """Deletes stored images; failures are logged and ignored."""
    results = await asyncio.gather(
        *(delete_image(fid) for fid in file_ids if fid),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, Exception):
            logger.error(f"Image deletion failed (continuing): {result}")


async def delete_post(user: Dict[str, Any], post_id: str) -> str:
    post = await _get_owned_post(user, post_id)

    try:
        await delete_image(post.get("imageFileId"))
    except Exception as e:
        logger.error(f"Image deletion failed (continuing): {e}")

    await posts_collection.delete_one({"_id": post["_id"]})
    await users_collection.update_one(
        {"_id": user["_id"]}, {"$inc": {"stats.totalPosts": -1}}
    )
    return post_id


async def delete_all_posts(user: Dict[str, Any]) -> Tuple[int, List[str]]:
    """Deletes every post of the user; returns (deleted count, image ids to clean up)."""
    posts = await posts_collection.find(
        {"user": user["_id"]}, {"imageFileId": 1}
    ).to_list(length=None)
    if not posts:
        return 0, []

    result = await posts_collection.delete_many({"user": user["_id"]})
    await users_collection.update_one(
        {"_id": user["_id"]}, {"$set": {"stats.totalPosts": 0}}
    )
    return result.deleted_count, [p["imageFileId"] for p in posts if p.get("imageFileId")]


# -------------------------------------------------------
# Stats
# -------------------------------------------------------

def compute_post_stats(posts: List[Dict[str, Any]]) -> Dict[str, Any]:
    category_stats: Dict[str, int] = {}
    style_stats: Dict[str, int] = {}
    monthly_stats: Dict[str, int] = {}

    for post in posts:
        category = post.get("category")
        category_stats[category] = category_stats.get(category, 0) + 1

        if post.get("vibeStyle"):
            style = post["vibeStyle"]
            style_stats[style] = style_stats.get(style, 0) + 1

        created_at = post.get("createdAt")
        if created_at:
            month = created_at.strftime("%Y-%m")
            monthly_stats[month] = monthly_stats.get(month, 0) + 1

    avg_per_month = (
        round(len(posts) / max(len(monthly_stats), 1), 1) if posts else 0
    )

    return {
        "categoryBreakdown": category_stats,
        "styleBreakdown": style_stats,
        "monthlyActivity": monthly_stats,
        "totalCategories": len(category_stats),
        "totalStyles": len(style_stats),
        "avgPostsPerMonth": avg_per_month,
    }


async def get_user_stats(user: Dict[str, Any]) -> Dict[str, Any]:
    user_doc = await users_collection.find_one(
        {"_id": user["_id"]}, {"stats": 1, "preferences": 1}
    ) or {}
    posts = await posts_collection.find(
        {"user": user["_id"]}, {"category": 1, "vibeStyle": 1, "createdAt": 1}
    ).to_list(length=None)

    return {
        "userStats": user_doc.get("stats", {}),
        "preferences": user_doc.get("preferences", {}),
        **compute_post_stats(posts),
    }

# snapcaption_backend/services/validation.py
import re
from typing import List, Optional

import bleach
from fastapi import HTTPException

from config import ALLOWED_IMAGE_TYPES, MAX_POST_IMAGE_BYTES
from services.caption_normalizer import STYLES

USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
MAX_EXTRA_PROMPT_LENGTH = 500


def validation_failed(errors: List[str]) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"message": "Validation failed", "errors": errors},
    )


def validate_register_input(username: Optional[str], password: Optional[str]) -> List[str]:
    errors = []

    if not username or not isinstance(username, str):
        errors.append("Username is required")
    elif not 3 <= len(username) <= 20:
        errors.append("Username must be 3-20 characters long")
    elif not USERNAME_RE.match(username):
        errors.append("Username can only contain letters, numbers, and underscores")

    if not password or not isinstance(password, str):
        errors.append("Password is required")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    elif not (
        any(c.islower() for c in password)
        and any(c.isupper() for c in password)
        and any(c.isdigit() for c in password)
    ):
        errors.append("Password must contain uppercase, lowercase, and number")

    return errors


def validate_login_input(username: Optional[str], password: Optional[str]) -> List[str]:
    errors = []
    if not username or not isinstance(username, str):
        errors.append("Username is required")
    if not password or not isinstance(password, str):
        errors.append("Password is required")
    return errors


def validate_post_input(
    content_type: Optional[str],
    size: Optional[int],
    vibe: Optional[str],
    extra_prompt: Optional[str],
    has_file: bool = True,
) -> List[str]:
    errors = []

    if not has_file:
        errors.append("Image file is required")
    else:
        if content_type not in ALLOWED_IMAGE_TYPES:
            errors.append("Invalid file type. Only JPEG, PNG, and WebP are allowed")
        if size is not None and size > MAX_POST_IMAGE_BYTES:
            errors.append("File too large. Maximum size is 4MB")

    if vibe and vibe not in STYLES:
        errors.append("Invalid vibe selection")

    if extra_prompt and len(extra_prompt) > MAX_EXTRA_PROMPT_LENGTH:
        errors.append("Additional prompt must be less than 500 characters")

    return errors


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """Escapes every HTML tag in free text coming from form fields."""
    if not value:
        return value
    return bleach.clean(value.strip(), tags=set(), strip=False)

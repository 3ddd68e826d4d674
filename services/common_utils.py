# snapcaption_backend/services/common_utils.py
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_tags(tags: Union[str, List[str], None]) -> List[str]:
    """Accepts a list or a comma-separated string and returns trimmed tags."""
    if not tags:
        return []
    if isinstance(tags, list):
        return [str(t).strip() for t in tags if str(t).strip()]
    return [t.strip() for t in tags.split(",") if t.strip()]


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Returns an ObjectId for a valid id string, else None."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def convert_object_ids(document: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively converts MongoDB ObjectId values to strings for JSON serialization."""
    for key, value in document.items():
        if isinstance(value, ObjectId):
            document[key] = str(value)
        elif isinstance(value, dict):
            document[key] = convert_object_ids(value)
        elif isinstance(value, list):
            document[key] = [
                convert_object_ids(item) if isinstance(item, dict)
                else str(item) if isinstance(item, ObjectId)
                else item
                for item in value
            ]
    return document

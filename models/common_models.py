# snapcaption_backend/models/common_models.py
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel


class Category(str, Enum):
    Personal = "Personal"
    Business = "Business"
    Creative = "Creative"
    Social = "Social"
    Marketing = "Marketing"
    Other = "Other"


class Theme(str, Enum):
    Light = "light"
    Dark = "dark"
    System = "system"


# --- Auth ---

class RegisterUserRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


# --- Posts ---

class PostUpdateRequest(BaseModel):
    caption: Optional[str] = None
    category: Optional[Category] = None
    tags: Optional[Union[List[str], str]] = None
    isPublic: Optional[bool] = None


class BulkUpdateFields(BaseModel):
    category: Optional[Category] = None
    tags: Optional[Union[List[str], str]] = None
    isPublic: Optional[bool] = None


class BulkUpdateRequest(BaseModel):
    postIds: Optional[List[str]] = None
    updates: BulkUpdateFields = BulkUpdateFields()


# --- User ---

class Preferences(BaseModel):
    theme: Theme = Theme.System
    favoriteStyles: List[str] = []
    defaultCategory: Category = Category.Personal


class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = None
    preferences: Optional[Preferences] = None


class PreferencesUpdateRequest(BaseModel):
    theme: Optional[Theme] = None
    favoriteStyles: Optional[List[str]] = None
    defaultCategory: Optional[Category] = None

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_MIN = 3
USERNAME_MAX = 20
EMAIL_MAX = 50
PASSWORD_MIN = 6


class UserCreate(BaseModel):
    username: str = Field(min_length=USERNAME_MIN, max_length=USERNAME_MAX)
    email: EmailStr
    password: str = Field(min_length=PASSWORD_MIN)

    @field_validator("email")
    @classmethod
    def check_email_length(cls, v):
        if v is not None and len(v) > EMAIL_MAX:
            raise ValueError(f"email must be at most {EMAIL_MAX} characters")
        return v


class UserLogin(BaseModel):
    # normalized the same way as at registration
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    password: str


class UserUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    username: Optional[str] = Field(default=None, min_length=USERNAME_MIN, max_length=USERNAME_MAX)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=PASSWORD_MIN)
    profilePicture: Optional[str] = None
    coverPicture: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=80)
    city: Optional[str] = Field(default=None, max_length=50)
    homeTown: Optional[str] = Field(default=None, max_length=50)
    relationship: Optional[str] = None
    # admin only
    status: Optional[Literal["active", "inactive"]] = None
    isAdmin: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def check_email_length(cls, v):
        if v is not None and len(v) > EMAIL_MAX:
            raise ValueError(f"email must be at most {EMAIL_MAX} characters")
        return v


ADMIN_ONLY_FIELDS = {"status", "isAdmin"}


class RoleUpdate(BaseModel):
    isAdmin: bool


class UserOut(BaseModel):
    id: str
    username: str
    email: str
    status: str = "active"
    isAdmin: bool = False
    profilePicture: str = ""
    coverPicture: str = ""
    description: str = ""
    city: str = ""
    homeTown: str = ""
    relationship: str = ""
    followers: List[str] = []
    followings: List[str] = []
    createdAt: Optional[datetime] = None


class UserSearchResult(BaseModel):
    username: str
    profilePicture: str = ""
    description: str = ""
    city: str = ""
    homeTown: str = ""
    followers: List[str] = []
    followings: List[str] = []


class UserSummary(BaseModel):
    id: str
    username: str
    profilePicture: str = ""


class AuthResponse(BaseModel):
    user: UserOut
    token: str
    token_type: str = "bearer"


def new_user_document(username: str, email: str, password_hash: str, now: datetime) -> dict:
    return {
        "username": username,
        "email": email,
        "password": password_hash,
        "status": "active",
        "isAdmin": False,
        "profilePicture": "",
        "coverPicture": "",
        "followers": [],
        "followings": [],
        "description": "",
        "city": "",
        "homeTown": "",
        "relationship": "",
        "createdAt": now,
        "updatedAt": now,
    }


def user_out(user_doc: dict) -> UserOut:
    return UserOut(
        id=str(user_doc["_id"]),
        username=user_doc["username"],
        email=user_doc["email"],
        status=user_doc.get("status", "active"),
        isAdmin=user_doc.get("isAdmin", False),
        profilePicture=user_doc.get("profilePicture", ""),
        coverPicture=user_doc.get("coverPicture", ""),
        description=user_doc.get("description", ""),
        city=user_doc.get("city", ""),
        homeTown=user_doc.get("homeTown", ""),
        relationship=user_doc.get("relationship", ""),
        followers=user_doc.get("followers", []),
        followings=user_doc.get("followings", []),
        createdAt=user_doc.get("createdAt"),
    )


def user_search_result(user_doc: dict) -> UserSearchResult:
    return UserSearchResult(
        username=user_doc["username"],
        profilePicture=user_doc.get("profilePicture", ""),
        description=user_doc.get("description", ""),
        city=user_doc.get("city", ""),
        homeTown=user_doc.get("homeTown", ""),
        followers=user_doc.get("followers", []),
        followings=user_doc.get("followings", []),
    )


def user_summary(user_doc: dict) -> UserSummary:
    return UserSummary(
        id=str(user_doc["_id"]),
        username=user_doc["username"],
        profilePicture=user_doc.get("profilePicture", ""),
    )

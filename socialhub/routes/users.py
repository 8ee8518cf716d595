import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, File, Query, UploadFile
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..database import get_db, to_object_id
from ..exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..models.post import MessageOut
from ..models.user import (
    ADMIN_ONLY_FIELDS,
    RoleUpdate,
    UserOut,
    UserSearchResult,
    UserSummary,
    UserUpdate,
    user_out,
    user_search_result,
    user_summary,
)
from ..utils.security import hash_password
from ..utils.uploads import remove_image, save_image
from .auth import CurrentUser, get_current_user, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

NO_PASSWORD = {"password": 0}


def _ensure_self_or_admin(current_user: CurrentUser, user_id: str, message: str) -> None:
    if current_user.id != user_id and not current_user.is_admin:
        raise ForbiddenError(message)


# --- Admin: list users ---
@router.get("", response_model=List[UserOut])
def list_users(
    new: bool = Query(False, description="Only the 10 most recently created users"),
    admin: CurrentUser = Depends(require_admin),
    db: Database = Depends(get_db),
):
    cursor = db.users.find({}, NO_PASSWORD)
    if new:
        cursor = cursor.sort("_id", DESCENDING).limit(10)
    return [user_out(u) for u in cursor]


# --- Search by username ---
@router.get("/search", response_model=List[UserSearchResult])
def search_users(
    username: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not username or not username.strip():
        raise ValidationError("Search term is required", field="username")
    pattern = re.escape(username.strip())
    users = db.users.find(
        {"username": {"$regex": pattern, "$options": "i"}},
        {"password": 0, "_id": 0},
    )
    return [user_search_result(u) for u in users]


# --- Profile ---
@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Database = Depends(get_db)):
    user_doc = db.users.find_one({"_id": to_object_id(user_id, "user")}, {"password": 0, "updatedAt": 0})
    if not user_doc:
        raise NotFoundError("user", user_id)
    return user_out(user_doc)


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    updates: UserUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = to_object_id(user_id, "user")
    user_id = str(oid)
    _ensure_self_or_admin(current_user, user_id, "You can only update your account!")

    data = updates.model_dump(exclude_unset=True, exclude_none=True)
    if not data:
        raise ValidationError("No fields to update")
    if ADMIN_ONLY_FIELDS & data.keys() and not current_user.is_admin:
        raise ForbiddenError("Only admins can change account status or role")
    taken = [{key: data[key]} for key in ("username", "email") if key in data]
    if taken and db.users.find_one({"_id": {"$ne": oid}, "$or": taken}, {"_id": 1}):
        raise ConflictError("Username or email already exists")
    if "password" in data:
        data["password"] = hash_password(data["password"])
    data["updatedAt"] = datetime.now(timezone.utc)

    try:
        user_doc = db.users.find_one_and_update(
            {"_id": oid},
            {"$set": data},
            projection=NO_PASSWORD,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ConflictError("Username or email already exists")
    if not user_doc:
        raise NotFoundError("user", user_id)

    logger.info("User %s updated by %s (fields: %s)", user_id, current_user.id, sorted(data))
    return user_out(user_doc)


@router.delete("/{user_id}", response_model=MessageOut)
def delete_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = to_object_id(user_id, "user")
    user_id = str(oid)
    _ensure_self_or_admin(current_user, user_id, "You can only delete your account!")
    result = db.users.delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("user", user_id)
    logger.info("User %s deleted by %s", user_id, current_user.id)
    return MessageOut(message="Account has been deleted")


# --- Follow / Unfollow ---
@router.put("/{user_id}/follow", response_model=MessageOut)
def follow_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = to_object_id(user_id, "user")
    user_id = str(oid)
    if user_id == current_user.id:
        raise ForbiddenError("You can't follow yourself")
    target = db.users.find_one({"_id": oid}, {"username": 1})
    if not target:
        raise NotFoundError("user", user_id)

    result = db.users.update_one(
        {"_id": oid, "followers": {"$ne": current_user.id}},
        {"$addToSet": {"followers": current_user.id}},
    )
    # the caller-side write is re-applied even when already following,
    # so retrying a half-applied follow completes it
    db.users.update_one(
        {"_id": current_user.object_id},
        {"$addToSet": {"followings": user_id}},
    )
    if result.modified_count == 0:
        raise ForbiddenError("You already follow this user")

    logger.info("User %s followed %s", current_user.id, user_id)
    return MessageOut(message=f"User {target['username']} has been followed")


@router.put("/{user_id}/unfollow", response_model=MessageOut)
def unfollow_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = to_object_id(user_id, "user")
    user_id = str(oid)
    if user_id == current_user.id:
        raise ForbiddenError("You can't unfollow yourself")
    target = db.users.find_one({"_id": oid}, {"username": 1})
    if not target:
        raise NotFoundError("user", user_id)

    result = db.users.update_one(
        {"_id": oid, "followers": current_user.id},
        {"$pull": {"followers": current_user.id}},
    )
    db.users.update_one(
        {"_id": current_user.object_id},
        {"$pull": {"followings": user_id}},
    )
    if result.modified_count == 0:
        raise ForbiddenError("You don't follow this user")

    logger.info("User %s unfollowed %s", current_user.id, user_id)
    return MessageOut(message=f"User {target['username']} has been unfollowed")


def _list_related(db: Database, user_id: str, field: str) -> List[UserSummary]:
    user_doc = db.users.find_one({"_id": to_object_id(user_id, "user")}, {field: 1})
    if not user_doc:
        raise NotFoundError("user", user_id)
    ids = [ObjectId(i) for i in user_doc.get(field, []) if ObjectId.is_valid(i)]
    return [user_summary(u) for u in db.users.find({"_id": {"$in": ids}}, NO_PASSWORD)]


@router.get("/{user_id}/followers", response_model=List[UserSummary])
def list_followers(user_id: str, db: Database = Depends(get_db)):
    return _list_related(db, user_id, "followers")


@router.get("/{user_id}/followings", response_model=List[UserSummary])
def list_followings(user_id: str, db: Database = Depends(get_db)):
    return _list_related(db, user_id, "followings")


# --- Profile / cover pictures ---
async def _set_picture(
    db: Database, current_user: CurrentUser, user_id: str, field: str, image: UploadFile
) -> UserOut:
    oid = to_object_id(user_id, "user")
    user_id = str(oid)
    _ensure_self_or_admin(current_user, user_id, "You can only update your account!")
    if not db.users.find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("user", user_id)

    image_path = await save_image(image)
    if image_path is None:
        raise ValidationError("An image file is required", field="image")
    try:
        before = db.users.find_one_and_update(
            {"_id": oid},
            {"$set": {field: image_path, "updatedAt": datetime.now(timezone.utc)}},
            projection=NO_PASSWORD,
            return_document=ReturnDocument.BEFORE,
        )
    except PyMongoError:
        await remove_image(image_path)
        raise
    if not before:
        await remove_image(image_path)
        raise NotFoundError("user", user_id)

    await remove_image(before.get(field))
    before[field] = image_path
    return user_out(before)


@router.put("/{user_id}/profile-picture", response_model=UserOut)
async def upload_profile_picture(
    user_id: str,
    image: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return await _set_picture(db, current_user, user_id, "profilePicture", image)


@router.put("/{user_id}/cover-picture", response_model=UserOut)
async def upload_cover_picture(
    user_id: str,
    image: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return await _set_picture(db, current_user, user_id, "coverPicture", image)


# --- Admin: role ---
@router.put("/{user_id}/role", response_model=UserOut)
def set_role(
    user_id: str,
    role: RoleUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: Database = Depends(get_db),
):
    user_doc = db.users.find_one_and_update(
        {"_id": to_object_id(user_id, "user")},
        {"$set": {"isAdmin": role.isAdmin, "updatedAt": datetime.now(timezone.utc)}},
        projection=NO_PASSWORD,
        return_document=ReturnDocument.AFTER,
    )
    if not user_doc:
        raise NotFoundError("user", user_id)
    logger.info("Admin %s set isAdmin=%s on user %s", admin.id, role.isAdmin, user_id)
    return user_out(user_doc)

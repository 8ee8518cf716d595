import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from ..database import get_db, to_object_id
from ..exceptions import ForbiddenError, NotFoundError, ValidationError
from ..models.post import (
    COMMENT_MAX,
    DESCRIPTION_MAX,
    TITLE_MAX,
    CommentAdded,
    CommentCreate,
    CommentOut,
    LikeOut,
    MessageOut,
    PostOut,
    comment_out,
    post_out,
)
from ..utils.uploads import remove_image, save_image
from .auth import CurrentUser, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/post", tags=["posts"])

LIKE_ATTEMPTS = 3


def _check_lengths(title: Optional[str], description: Optional[str]) -> None:
    if title is not None and len(title) > TITLE_MAX:
        raise ValidationError(f"Title must be at most {TITLE_MAX} characters", field="title")
    if description is not None and len(description) > DESCRIPTION_MAX:
        raise ValidationError(
            f"Description must be at most {DESCRIPTION_MAX} characters", field="description"
        )


def _find_post(db: Database, post_id: str) -> dict:
    post = db.posts.find_one({"_id": to_object_id(post_id, "post")})
    if not post:
        raise NotFoundError("post", post_id)
    return post


# --- Create ---
@router.post("", response_model=PostOut)
async def create_post(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not title or not title.strip() or not category or not category.strip():
        raise ValidationError("Title and category are required")
    _check_lengths(title, description)

    image_path = await save_image(image)
    now = datetime.now(timezone.utc)
    post_doc = {
        "userId": current_user.id,
        "title": title,
        "description": description or "",
        "image": image_path,
        "category": category,
        "likes": [],
        "comments": [],
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        result = db.posts.insert_one(post_doc)
    except PyMongoError:
        await remove_image(image_path)
        raise
    post_doc["_id"] = result.inserted_id
    logger.info("User %s created post %s", current_user.id, result.inserted_id)
    return post_out(post_doc)


# --- Listing ---
@router.get("/all", response_model=List[PostOut])
def get_all_posts(db: Database = Depends(get_db)):
    posts = [post_out(p) for p in db.posts.find()]
    if not posts:
        raise NotFoundError("posts")
    return posts


@router.get("/timeline/all", response_model=List[PostOut])
def get_timeline(
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    # own posts first, then each followed user's in following order
    posts = list(db.posts.find({"userId": current_user.id}))
    for following_id in current_user.doc.get("followings", []):
        posts.extend(db.posts.find({"userId": following_id}))
    return [post_out(p) for p in posts]


@router.get("/user/{user_id}", response_model=List[PostOut])
def get_user_posts(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    # ids are stored in canonical lowercase hex
    user_id = str(to_object_id(user_id, "user"))
    posts = [post_out(p) for p in db.posts.find({"userId": user_id})]
    if not posts:
        raise NotFoundError("posts")
    return posts


@router.get("/search", response_model=List[PostOut])
def search_posts(
    query: Optional[str] = Query(None),
    filter_: Optional[str] = Query(None, alias="filter"),
    sort: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    criteria = {}
    if query:
        pattern = re.escape(query)
        criteria["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"category": {"$regex": pattern, "$options": "i"}},
        ]

    followings = current_user.doc.get("followings", [])
    if filter_ == "exclude-my-posts":
        criteria["userId"] = {"$in": followings}
    elif filter_ == "only-my-posts":
        criteria["userId"] = current_user.id
    else:
        criteria["userId"] = {"$in": [current_user.id] + followings}

    cursor = db.posts.find(criteria)
    if sort == "date":
        cursor = cursor.sort("createdAt", DESCENDING)
    elif sort == "username":
        # posts carry no username; results stay in natural order
        pass
    else:
        cursor = cursor.sort("title", ASCENDING)
    return [post_out(p) for p in cursor]


# --- Single post ---
@router.get("/{post_id}", response_model=PostOut)
def get_post(post_id: str, db: Database = Depends(get_db)):
    return post_out(_find_post(db, post_id))


@router.put("/{post_id}", response_model=PostOut)
async def update_post(
    post_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = _find_post(db, post_id)
    if post["userId"] != current_user.id:
        raise ForbiddenError("You can only update your own post")

    if title is not None and not title.strip():
        raise ValidationError("Title cannot be empty", field="title")
    if category is not None and not category.strip():
        raise ValidationError("Category cannot be empty", field="category")
    _check_lengths(title, description)

    updates = {
        key: value
        for key, value in (("title", title), ("description", description), ("category", category))
        if value is not None
    }
    image_path = await save_image(image)
    if image_path:
        updates["image"] = image_path
    updates["updatedAt"] = datetime.now(timezone.utc)

    try:
        updated = db.posts.find_one_and_update(
            {"_id": post["_id"]},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
    except PyMongoError:
        await remove_image(image_path)
        raise
    if not updated:
        await remove_image(image_path)
        raise NotFoundError("post", post_id)
    if image_path:
        await remove_image(post.get("image"))
    return post_out(updated)


@router.delete("/{post_id}", response_model=MessageOut)
async def delete_post(
    post_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = _find_post(db, post_id)
    if post["userId"] != current_user.id and not current_user.is_admin:
        raise ForbiddenError("You can only delete your own post or you need admin privileges")
    db.posts.delete_one({"_id": post["_id"]})
    await remove_image(post.get("image"))
    logger.info("Post %s deleted by %s", post_id, current_user.id)
    return MessageOut(message="The post has been deleted")


# --- Like / Dislike ---
@router.put("/{post_id}/like", response_model=LikeOut)
def toggle_like(
    post_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = to_object_id(post_id, "post")
    uid = current_user.id
    for _ in range(LIKE_ATTEMPTS):
        result = db.posts.update_one(
            {"_id": oid, "likes": {"$ne": uid}},
            {"$addToSet": {"likes": uid}},
        )
        if result.modified_count:
            return LikeOut(message="The post has been liked", liked=True)
        result = db.posts.update_one(
            {"_id": oid, "likes": uid},
            {"$pull": {"likes": uid}},
        )
        if result.modified_count:
            return LikeOut(message="The post has been disliked", liked=False)
        if db.posts.find_one({"_id": oid}, {"_id": 1}) is None:
            break
    raise NotFoundError("post", post_id)


# --- Comments ---
@router.post("/{post_id}/comment", response_model=CommentAdded, status_code=201)
def add_comment(
    post_id: str,
    body: CommentCreate = Body(...),
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    text = (body.text or "").strip()
    if not text:
        raise ValidationError("Comment text is required", field="text")
    if len(text) > COMMENT_MAX:
        raise ValidationError(f"Comment must be at most {COMMENT_MAX} characters", field="text")

    now = datetime.now(timezone.utc)
    comment = {
        "id": str(ObjectId()),
        "userId": current_user.id,
        "username": current_user.username,
        "text": text,
        "createdAt": now,
    }
    result = db.posts.update_one(
        {"_id": to_object_id(post_id, "post")},
        {"$push": {"comments": comment}, "$set": {"updatedAt": now}},
    )
    if result.matched_count == 0:
        raise NotFoundError("post", post_id)
    return CommentAdded(message="Comment added", comment=comment_out(comment))


@router.get("/{post_id}/comments", response_model=List[CommentOut])
def get_comments(post_id: str, db: Database = Depends(get_db)):
    post = db.posts.find_one({"_id": to_object_id(post_id, "post")}, {"comments": 1})
    if not post:
        raise NotFoundError("post", post_id)
    return [comment_out(c) for c in post.get("comments", [])]


@router.delete("/{post_id}/comment/{comment_id}", response_model=MessageOut)
def delete_comment(
    post_id: str,
    comment_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    post = _find_post(db, post_id)
    comment = next((c for c in post.get("comments", []) if c.get("id") == comment_id), None)
    if comment is None:
        raise NotFoundError("comment", comment_id)
    if comment["userId"] != current_user.id:
        raise ForbiddenError("You can only delete your own comments")

    db.posts.update_one(
        {"_id": post["_id"]},
        {"$pull": {"comments": {"id": comment_id, "userId": current_user.id}}},
    )
    return MessageOut(message="Comment deleted")

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

TITLE_MAX = 100
DESCRIPTION_MAX = 500
COMMENT_MAX = 500
DEFAULT_CATEGORY = "Other"


class CommentCreate(BaseModel):
    text: Optional[str] = None


class CommentOut(BaseModel):
    id: str
    userId: str
    username: str
    text: str
    createdAt: Optional[datetime] = None


class PostOut(BaseModel):
    id: str
    userId: str
    title: str
    description: str = ""
    image: Optional[str] = None
    category: str = DEFAULT_CATEGORY
    likes: List[str] = []
    comments: List[CommentOut] = []
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class CommentAdded(BaseModel):
    message: str
    comment: CommentOut


class LikeOut(BaseModel):
    message: str
    liked: bool


class MessageOut(BaseModel):
    message: str


def comment_out(comment: dict) -> CommentOut:
    return CommentOut(
        id=comment["id"],
        userId=comment["userId"],
        username=comment["username"],
        text=comment["text"],
        createdAt=comment.get("createdAt"),
    )


def post_out(post: dict) -> PostOut:
    return PostOut(
        id=str(post["_id"]),
        userId=post["userId"],
        title=post["title"],
        description=post.get("description", ""),
        image=post.get("image"),
        category=post.get("category", DEFAULT_CATEGORY),
        likes=post.get("likes", []),
        comments=[comment_out(c) for c in post.get("comments", [])],
        createdAt=post.get("createdAt"),
        updatedAt=post.get("updatedAt"),
    )

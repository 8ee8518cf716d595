import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from ..database import get_db, to_object_id
from ..exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from ..models.post import MessageOut
from ..models.user import (
    AuthResponse,
    UserCreate,
    UserLogin,
    UserOut,
    new_user_document,
    user_out,
)
from ..utils.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

security = HTTPBearer(auto_error=False)


class CurrentUser:
    """Verified token claims plus the account as currently stored."""

    def __init__(self, claims: dict, doc: dict):
        self.claims = claims
        self.doc = doc

    @property
    def id(self) -> str:
        return str(self.doc["_id"])

    @property
    def object_id(self):
        return self.doc["_id"]

    @property
    def username(self) -> str:
        # comments record the name the token was issued under
        return self.claims.get("username") or self.doc["username"]

    @property
    def is_admin(self) -> bool:
        return bool(self.doc.get("isAdmin", False))


# ----------------- UTILITY -----------------
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Access denied: bearer token missing")
    payload = decode_access_token(credentials.credentials)
    try:
        user_id = to_object_id(payload["id"], "user")
    except NotFoundError:
        raise UnauthorizedError("Invalid token")
    user_doc = db.users.find_one({"_id": user_id})
    if not user_doc or user_doc.get("status") != "active":
        raise ForbiddenError("Access denied. Your account is deactivated or not found.")
    return CurrentUser(payload, user_doc)


def require_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not current_user.is_admin:
        raise ForbiddenError("Admin privileges required")
    return current_user


# ----------------- REGISTER -----------------
@router.post("/register", response_model=AuthResponse)
def register(user: UserCreate, db: Database = Depends(get_db)):
    if db.users.find_one({"$or": [{"username": user.username}, {"email": user.email}]}):
        raise ConflictError("Username or email already exists")

    now = datetime.now(timezone.utc)
    user_doc = new_user_document(user.username, user.email, hash_password(user.password), now)
    try:
        result = db.users.insert_one(user_doc)
    except DuplicateKeyError:
        raise ConflictError("Username or email already exists")
    user_doc["_id"] = result.inserted_id

    logger.info("Registered user %s (%s)", user.username, result.inserted_id)
    return AuthResponse(user=user_out(user_doc), token=create_access_token(user_doc))


# ----------------- LOGIN -----------------
@router.post("/login", response_model=AuthResponse)
def login(user: UserLogin, db: Database = Depends(get_db)):
    criteria = []
    if user.email:
        criteria.append({"email": user.email})
    if user.username:
        criteria.append({"username": user.username})
    if not criteria:
        raise ValidationError("Email or username is required", field="email")

    user_doc = db.users.find_one({"$or": criteria})
    if not user_doc:
        raise NotFoundError("user")
    if user_doc.get("status") != "active":
        raise ForbiddenError("Your account has been deactivated. Please contact support.")
    if not verify_password(user.password, user_doc["password"]):
        logger.warning("Failed login for %s", user_doc["username"])
        raise UnauthorizedError("Wrong password")

    return AuthResponse(user=user_out(user_doc), token=create_access_token(user_doc))


# ----------------- CURRENT ACCOUNT -----------------
@router.get("/me", response_model=UserOut)
def me(current_user: CurrentUser = Depends(get_current_user)):
    return user_out(current_user.doc)


@router.put("/toggle-status/{user_id}", response_model=MessageOut)
def toggle_status(
    user_id: str,
    admin: CurrentUser = Depends(require_admin),
    db: Database = Depends(get_db),
):
    oid = to_object_id(user_id, "user")
    user_doc = db.users.find_one({"_id": oid})
    if not user_doc:
        raise NotFoundError("user", user_id)

    status = "inactive" if user_doc.get("status", "active") == "active" else "active"
    db.users.update_one(
        {"_id": oid},
        {"$set": {"status": status, "updatedAt": datetime.now(timezone.utc)}},
    )
    logger.info("Admin %s set user %s status to %s", admin.id, user_id, status)
    return MessageOut(message=f"User status updated to {status}")

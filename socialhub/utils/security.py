from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from ..config import settings
from ..exceptions import UnauthorizedError

BCRYPT_ROUNDS = 10


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def create_access_token(user_doc: dict) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(user_doc["_id"]),
        "email": user_doc["email"],
        "username": user_doc["username"],
        "isAdmin": bool(user_doc.get("isAdmin", False)),
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")
    if not payload.get("id"):
        raise UnauthorizedError("Invalid token")
    return payload

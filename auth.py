import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

import config
from database import Mongo, get_mongo
from errors import NotFound
from helpers import serialize_doc
from repositories import UserRepository

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

DEV_ADMIN = {"id": "dev-admin-id", "name": "Developer", "email": "dev@admin.com", "role": "admin"}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRE_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session expired. Please log in again.")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token. Please log in again.")


def public_user(user: dict) -> dict:
    user = serialize_doc(user)
    user.pop("password_hash", None)
    return user


def _load_user(token: str, mongo: Mongo) -> dict:
    payload = decode_token(token)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    try:
        user = UserRepository(mongo).get(user_id)
    except NotFound:
        raise HTTPException(status_code=401, detail="User not found. Please log in again.")
    return public_user(user)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    mongo: Mongo = Depends(get_mongo),
) -> dict:
    if config.BYPASS_AUTH:
        logger.debug("Auth bypass active, acting as development admin")
        return dict(DEV_ADMIN)
    if credentials is None:
        raise HTTPException(status_code=401, detail="Authentication required. Please log in.")
    return _load_user(credentials.credentials, mongo)


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "admin"

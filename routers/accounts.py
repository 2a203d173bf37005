from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from auth import create_token, get_current_user, hash_password, public_user, verify_password
from database import Mongo, get_mongo
from helpers import envelope
from repositories import UserRepository
from schemas import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


def _session(user: dict) -> dict:
    user = public_user(user)
    token = create_token({"id": user["id"], "email": user["email"], "role": user.get("role", "customer")})
    return envelope({"token": token, "user": user})


@router.post("/register", status_code=201)
def register(body: RegisterBody, mongo: Mongo = Depends(get_mongo)):
    user = User(name=body.name.strip(), email=body.email, password_hash=hash_password(body.password))
    return _session(UserRepository(mongo).create(user))


@router.post("/login")
def login(body: LoginBody, mongo: Mongo = Depends(get_mongo)):
    user = UserRepository(mongo).find_by_email(body.email)
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _session(user)


@router.get("/me")
def me(user: dict = Depends(get_current_user)):
    return envelope(user)

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from .config import get_settings
from .db import get_db
from .utils import to_id

settings = get_settings()
ALGO = "HS256"
ADMIN_ROLE = "admin"
pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def hash_password(plain: str) -> str:
    return pwd.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd.verify(plain, hashed)


def create_access_token(user_id: str, expires_hours: Optional[int] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=expires_hours or settings.jwt_expires_hours)
    payload = {"sub": user_id, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGO)


async def get_current_user_id(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
) -> str:
    # Bearer primero; si no, la cookie httpOnly que deja el login web
    token = token or request.cookies.get("token")
    if not token:
        raise HTTPException(status_code=401, detail="Not authorized to access this route")
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    sub = payload.get("sub")
    if not sub or not ObjectId.is_valid(str(sub)):
        raise HTTPException(status_code=401, detail="Invalid token")
    return str(sub)


async def get_current_user(
    db: AsyncIOMotorDatabase = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    doc = await db.users.find_one({"_id": ObjectId(user_id)}, {"password_hash": 0})
    if not doc:
        raise HTTPException(status_code=401, detail="User not found")
    return to_id(doc)


def is_admin(user: dict) -> bool:
    return user.get("role") == ADMIN_ROLE


async def require_admin(current=Depends(get_current_user)):
    if not is_admin(current):
        raise HTTPException(status_code=403, detail=f"User role {current.get('role', 'user')} is not authorized to access this route")
    return current

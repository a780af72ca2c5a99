from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
from ..config import get_settings
from ..db import get_db
from ..security import hash_password, verify_password, create_access_token, get_current_user
from ..schemas.user import Register, Login, UserUpdate
from ..middleware.rate_limit import apply_rate_limit
from ..utils import envelope, to_id, utcnow
import logging

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def _public_user(doc: dict) -> dict:
    d = to_id(doc)
    d.pop("password_hash", None)
    return d


def _token_response(response: Response, user: dict) -> dict:
    token = create_access_token(str(user["_id"]))
    # cookie httpOnly para el front web; el token también va en el cuerpo
    response.set_cookie(
        "token",
        token,
        max_age=settings.jwt_expires_hours * 3600,
        httponly=True,
        secure=settings.env == "production",
        samesite="strict",
        path="/",
    )
    return envelope(_public_user(user), access_token=token, token_type="bearer")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(request: Request, response: Response, payload: Register, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 5 registros por minuto por IP
    apply_rate_limit(request, "5/minute")

    # mensaje genérico para no revelar qué emails existen
    failed = HTTPException(400, "Registration failed. Please check your details and try again.")
    if await db.users.find_one({"email": payload.email}):
        raise failed

    doc = payload.model_dump()
    doc["password_hash"] = hash_password(doc.pop("password"))
    doc["role"] = "user"
    doc["created_at"] = utcnow()
    try:
        res = await db.users.insert_one(doc)
    except DuplicateKeyError:
        raise failed
    doc["_id"] = res.inserted_id
    logger.info(f"User registered: {res.inserted_id}")
    return _token_response(response, doc)


@router.post("/login")
async def login(request: Request, response: Response, payload: Login, db: AsyncIOMotorDatabase = Depends(get_db)):
    # Rate limiting: máximo 10 intentos de login por minuto por IP
    apply_rate_limit(request, "10/minute")

    user = await db.users.find_one({"email": payload.email})
    if not user or not verify_password(payload.password, user.get("password_hash", "")):
        raise HTTPException(401, "Invalid credentials")
    return _token_response(response, user)


@router.get("/me")
async def me(current=Depends(get_current_user)):
    return envelope(current)


@router.get("/logout")
async def logout(response: Response):
    response.delete_cookie(
        "token", path="/", httponly=True, secure=settings.env == "production", samesite="strict"
    )
    return envelope({})


@router.put("/updatedetails")
async def update_details(payload: UserUpdate, current=Depends(get_current_user), db: AsyncIOMotorDatabase = Depends(get_db)):
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not changes:
        return envelope(current)

    taken = HTTPException(400, "Email already in use")
    if "email" in changes and await db.users.find_one({"email": changes["email"], "_id": {"$ne": ObjectId(current["id"])}}):
        raise taken
    changes["updated_at"] = utcnow()
    try:
        await db.users.update_one({"_id": ObjectId(current["id"])}, {"$set": changes})
    except DuplicateKeyError:
        raise taken
    doc = await db.users.find_one({"_id": ObjectId(current["id"])})
    logger.info(f"User {current['id']} updated {sorted(k for k in changes if k != 'updated_at')}")
    return envelope(_public_user(doc))

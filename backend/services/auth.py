"""
Password hashing and the current-user dependency.
"""
import bcrypt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from database import db
from .tokens import token_service

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def public_user(user: dict) -> dict:
    return {key: value for key, value in user.items() if key not in ("password_hash", "_id")}


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access token required")

    result = token_service.verify_access_token(credentials.credentials)
    if result["expired"]:
        raise HTTPException(
            status_code=401,
            detail={"message": "Access token expired", "code": "TOKEN_EXPIRED"},
        )
    if not result["valid"]:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await db.users.find_one({"id": result["decoded"]["user_id"]}, {"_id": 0, "password_hash": 0})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")

    request.state.user = user
    return user

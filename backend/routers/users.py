from fastapi import APIRouter, HTTPException, Depends
from typing import List, Optional

from database import db
from middleware import require_admin
from models import UserResponse, UserUpdate
from services import hash_password, now_iso
from services.helpers import sanitize_input

router = APIRouter(prefix="/users", tags=["Users"])

@router.get("", response_model=List[UserResponse])
async def get_users(
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    current_user: dict = Depends(require_admin)
):
    query = {}
    if role:
        query["role"] = role
    if is_active is not None:
        query["is_active"] = is_active
    users = await db.users.find(query, {"_id": 0, "password_hash": 0}).to_list(1000)
    return users

@router.put("/{user_id}")
async def update_user(user_id: str, updates: UserUpdate, current_user: dict = Depends(require_admin)):
    changes = updates.model_dump(mode="json", exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    if "name" in changes:
        changes["name"] = sanitize_input(changes["name"])
    if "password" in changes:
        changes["password_hash"] = hash_password(changes.pop("password"))
    changes["updated_at"] = now_iso()

    result = await db.users.update_one({"id": user_id}, {"$set": changes})
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "message": "User updated"}

@router.delete("/{user_id}")
async def delete_user(user_id: str, current_user: dict = Depends(require_admin)):
    if user_id == current_user["id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    result = await db.users.delete_one({"id": user_id})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    await db.donors.delete_many({"user_id": user_id})
    await db.recipients.delete_many({"user_id": user_id})
    return {"success": True, "message": "User deleted"}

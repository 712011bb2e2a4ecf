"""
Role-based access dependencies.
"""
from fastapi import Depends, HTTPException

from services import get_current_user


def require_roles(*roles: str):
    allowed = [getattr(role, "value", role) for role in roles]

    async def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user["role"] not in allowed:
            raise HTTPException(
                status_code=403,
                detail={
                    "message": "Access denied. Insufficient permissions.",
                    "required_roles": allowed,
                    "user_role": current_user["role"],
                },
            )
        return current_user

    return dependency


require_admin = require_roles("admin")
require_staff = require_roles("admin", "hospital_staff")


def ensure_admin_or_owner(current_user: dict, owner_user_id: str):
    """Raise 403 unless the caller is an admin or the owner of the record."""
    if current_user["role"] == "admin" or current_user["id"] == owner_user_id:
        return
    raise HTTPException(status_code=403, detail="Access denied. You can only access your own records.")


def is_staff(current_user: dict) -> bool:
    return current_user["role"] in ("admin", "hospital_staff")

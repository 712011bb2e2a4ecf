import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import ValidationError

from database import db
from models import (
    User, UserCreate, UserLogin, ProfileUpdate, RefreshTokenRequest,
    ForgotPasswordRequest, ResetPasswordRequest, ChangePasswordRequest,
    Donor, DonorCreate, Recipient, RecipientCreate, UserRole
)
from services import (
    get_current_user, hash_password, verify_password, public_user,
    token_service, email_service, check_donor_eligibility, now_iso
)
from services.helpers import sanitize_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_payload(user: dict) -> dict:
    return {"user_id": user["id"], "email": user["email"], "role": user["role"], "name": user["name"]}


def _profile_errors(exc: ValidationError) -> list:
    return [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]


async def _create_profile(user: dict, additional_data: dict):
    if user["role"] == UserRole.DONOR.value:
        data = DonorCreate(**additional_data)
        profile = Donor(**{**data.model_dump(mode="json"), "user_id": user["id"]})
        doc = profile.model_dump(mode="json")
        eligibility = check_donor_eligibility(doc)
        doc.update({
            "is_eligible": eligibility["is_eligible"],
            "eligibility_notes": ", ".join(eligibility["issues"]) or None,
            "next_eligible_date": eligibility["next_eligible_date"],
        })
        await db.donors.insert_one(doc)
    elif user["role"] == UserRole.RECIPIENT.value:
        data = RecipientCreate(**additional_data)
        profile = Recipient(**{**data.model_dump(mode="json"), "user_id": user["id"]})
        doc = profile.model_dump(mode="json")
        await db.recipients.insert_one(doc)


@router.post("/register", status_code=201)
async def register(user_data: UserCreate):
    email = user_data.email.lower()
    existing = await db.users.find_one({"$or": [{"email": email}, {"phone": user_data.phone}]})
    if existing:
        raise HTTPException(status_code=409, detail="User with this email or phone already exists")

    user = User(
        name=sanitize_input(user_data.name),
        email=email,
        password_hash=hash_password(user_data.password),
        phone=user_data.phone,
        role=user_data.role,
    )
    doc = user.model_dump(mode="json")
    await db.users.insert_one(doc)

    if user_data.additional_data:
        try:
            await _create_profile(doc, user_data.additional_data)
        except ValidationError as exc:
            await db.users.delete_one({"id": user.id})
            raise HTTPException(
                status_code=400,
                detail={
                    "message": f"{user_data.role.value.capitalize()} validation failed",
                    "errors": _profile_errors(exc),
                },
            )

    tokens = token_service.generate_token_pair(_token_payload(doc))
    await email_service.send_welcome_email(doc["email"], doc["name"], doc["role"])
    logger.info("Registered %s user %s", doc["role"], doc["id"])

    return {
        "success": True,
        "message": "Registration successful",
        "data": {"user": public_user(doc), "tokens": tokens},
    }


@router.post("/login")
async def login(credentials: UserLogin):
    user = await db.users.find_one({"email": credentials.email.lower()}, {"_id": 0})
    if not user or not verify_password(credentials.password, user["password_hash"]):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account is deactivated")

    await db.users.update_one({"id": user["id"]}, {"$set": {"last_login": now_iso()}})
    tokens = token_service.generate_token_pair(_token_payload(user))
    return {
        "success": True,
        "message": "Login successful",
        "data": {"user": public_user(user), "tokens": tokens},
    }


@router.post("/refresh-token")
async def refresh_token(body: RefreshTokenRequest):
    result = token_service.verify_refresh_token(body.refresh_token)
    if not result["valid"]:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = await db.users.find_one({"id": result["decoded"]["user_id"]}, {"_id": 0, "password_hash": 0})
    if not user or not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="User not found or inactive")

    tokens = token_service.generate_token_pair(_token_payload(user))
    return {"success": True, "message": "Token refreshed", "data": {"tokens": tokens}}


@router.post("/logout")
async def logout(current_user: dict = Depends(get_current_user)):
    # Tokens are stateless; the client discards them.
    return {"success": True, "message": "Logged out successfully"}


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest):
    user = await db.users.find_one({"email": body.email.lower()}, {"_id": 0})
    if user:
        token = token_service.generate_reset_token({"user_id": user["id"], "email": user["email"]})
        await email_service.send_password_reset(user["email"], user["name"], token)
    return {
        "success": True,
        "message": "If an account exists for this email, a password reset link has been sent",
    }


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    result = token_service.verify_reset_token(body.token)
    if not result["valid"]:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    update = await db.users.update_one(
        {"id": result["decoded"]["user_id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": now_iso()}},
    )
    if update.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "message": "Password reset successful"}


@router.post("/change-password")
async def change_password(body: ChangePasswordRequest, current_user: dict = Depends(get_current_user)):
    user = await db.users.find_one({"id": current_user["id"]}, {"_id": 0})
    if not verify_password(body.current_password, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    await db.users.update_one(
        {"id": current_user["id"]},
        {"$set": {"password_hash": hash_password(body.new_password), "updated_at": now_iso()}},
    )
    return {"success": True, "message": "Password changed successfully"}


@router.get("/profile")
async def get_profile(current_user: dict = Depends(get_current_user)):
    profile = None
    if current_user["role"] == UserRole.DONOR.value:
        profile = await db.donors.find_one({"user_id": current_user["id"]}, {"_id": 0})
    elif current_user["role"] == UserRole.RECIPIENT.value:
        profile = await db.recipients.find_one({"user_id": current_user["id"]}, {"_id": 0})
    return {"success": True, "data": {"user": current_user, "profile": profile}}


@router.put("/profile")
async def update_profile(body: ProfileUpdate, current_user: dict = Depends(get_current_user)):
    changes = body.model_dump(exclude_none=True)
    if "name" in changes:
        changes["name"] = sanitize_input(changes["name"])
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    changes["updated_at"] = now_iso()
    await db.users.update_one({"id": current_user["id"]}, {"$set": changes})
    user = await db.users.find_one({"id": current_user["id"]}, {"_id": 0, "password_hash": 0})
    return {"success": True, "message": "Profile updated", "data": {"user": user}}

from pydantic import BaseModel, Field, ConfigDict, EmailStr
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import HospitalPosition

class HospitalAddress(BaseModel):
    street: str
    city: str
    district: str
    zip_code: Optional[str] = None

class ContactInfo(BaseModel):
    phone: str
    email: EmailStr
    emergency_phone: Optional[str] = None

class StaffMember(BaseModel):
    user_id: str
    position: HospitalPosition
    department: Optional[str] = None
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class Hospital(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    registration_number: str
    address: HospitalAddress
    contact_info: ContactInfo
    staff_members: List[StaffMember] = []
    is_active: bool = True
    blood_bank_capacity: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class HospitalCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    registration_number: str = Field(min_length=3)
    address: HospitalAddress
    contact_info: ContactInfo
    blood_bank_capacity: int = Field(default=0, ge=0)

class HospitalUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    address: Optional[HospitalAddress] = None
    contact_info: Optional[ContactInfo] = None
    blood_bank_capacity: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None

class StaffMemberCreate(BaseModel):
    user_id: str
    position: HospitalPosition
    department: Optional[str] = None

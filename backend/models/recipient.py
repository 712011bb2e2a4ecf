from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime, timezone, date
import uuid
from .enums import BloodType
from .donor import EmergencyContact, check_date_of_birth

class TransfusionRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    transfusion_date: str
    blood_type: BloodType
    units: int
    hospital_id: Optional[str] = None
    reason: Optional[str] = None
    complications: Optional[str] = None

class TransfusionCreate(BaseModel):
    transfusion_date: date
    blood_type: BloodType
    units: int = Field(ge=1, le=10)
    hospital_id: Optional[str] = None
    reason: Optional[str] = None
    complications: Optional[str] = None

class Recipient(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    blood_type: BloodType
    date_of_birth: str
    medical_condition: str
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)
    transfusion_history: List[TransfusionRecord] = []
    allergies: List[str] = []
    current_medications: List[str] = []
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class RecipientCreate(BaseModel):
    user_id: Optional[str] = None
    blood_type: BloodType
    date_of_birth: date
    medical_condition: str = Field(min_length=5, max_length=200)
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)
    allergies: List[str] = []
    current_medications: List[str] = []

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, value):
        return check_date_of_birth(value)

class RecipientUpdate(BaseModel):
    emergency_contact: Optional[EmergencyContact] = None
    allergies: Optional[List[str]] = None
    current_medications: Optional[List[str]] = None

class MedicalStatusUpdate(BaseModel):
    medical_condition: str = Field(min_length=5, max_length=200)
    allergies: Optional[List[str]] = None
    current_medications: Optional[List[str]] = None

class ActiveStatusUpdate(BaseModel):
    is_active: bool

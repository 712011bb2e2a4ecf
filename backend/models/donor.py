from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime, timezone, date
import uuid
from .enums import BloodType, Gender, DonationStatus


def check_date_of_birth(value: date) -> date:
    today = date.today()
    if value >= today:
        raise ValueError("Date of birth cannot be in the future")
    age = today.year - value.year
    if age < 16 or age > 100:
        raise ValueError("Age must be between 16 and 100 years")
    return value


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    zip_code: Optional[str] = None

class EmergencyContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None

class MedicalHistory(BaseModel):
    allergies: List[str] = []
    medications: List[str] = []
    diseases: List[str] = []
    surgeries: List[str] = []

class Donor(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    blood_type: BloodType
    date_of_birth: str
    gender: Gender = Gender.MALE
    weight: float
    height: float
    address: Address = Field(default_factory=Address)
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)
    medical_history: MedicalHistory = Field(default_factory=MedicalHistory)
    last_donation_date: Optional[str] = None
    total_donations: int = 0
    is_eligible: bool = True
    eligibility_notes: Optional[str] = None
    next_eligible_date: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonorCreate(BaseModel):
    user_id: Optional[str] = None
    blood_type: BloodType
    date_of_birth: date
    gender: Gender = Gender.MALE
    weight: float = Field(ge=30, le=300)
    height: float = Field(ge=100, le=250)
    address: Address = Field(default_factory=Address)
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)
    medical_history: MedicalHistory = Field(default_factory=MedicalHistory)
    last_donation_date: Optional[date] = None

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, value):
        return check_date_of_birth(value)

class DonorUpdate(BaseModel):
    weight: Optional[float] = Field(default=None, ge=30, le=300)
    height: Optional[float] = Field(default=None, ge=100, le=250)
    gender: Optional[Gender] = None
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    medical_history: Optional[MedicalHistory] = None

class PreScreening(BaseModel):
    weight: float
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    hemoglobin: Optional[float] = None
    temperature: Optional[float] = None
    pulse: Optional[int] = None
    passed: bool = True
    notes: Optional[str] = None

class Donation(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donor_id: str
    campaign_id: Optional[str] = None
    donation_date: str
    blood_type: BloodType
    units_collected: int = 1
    pre_screening: PreScreening
    collected_by: str
    venue: Optional[str] = None
    status: DonationStatus = DonationStatus.COLLECTED
    inventory_id: Optional[str] = None
    complications: Optional[str] = None
    follow_up_required: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonationCreate(BaseModel):
    campaign_id: Optional[str] = None
    donation_date: Optional[date] = None
    units_collected: int = Field(default=1, ge=1)
    pre_screening: PreScreening
    venue: Optional[str] = None
    complications: Optional[str] = None
    follow_up_required: bool = False
    storage_section: Optional[str] = None

class BulkDonorNotification(BaseModel):
    blood_type: BloodType
    message: str = Field(min_length=10, max_length=160)
    urgency: str = "medium"

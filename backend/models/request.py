from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from datetime import datetime, timezone, date
import uuid
from .enums import BloodType, RequestStatus, UrgencyLevel

class Allocation(BaseModel):
    inventory_id: str
    units: int
    allocation_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    request_code: str = ""
    hospital_id: str
    requested_by: str
    recipient_id: Optional[str] = None
    blood_type: BloodType
    units_required: int
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    required_by: str
    reason: str
    patient_condition: str
    status: RequestStatus = RequestStatus.PENDING
    allocated_blood: List[Allocation] = []
    processed_by: Optional[str] = None
    processed_at: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodRequestCreate(BaseModel):
    hospital_id: Optional[str] = None
    recipient_id: Optional[str] = None
    blood_type: BloodType
    units_required: int = Field(ge=1, le=10)
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    required_by: date
    reason: str = Field(min_length=10, max_length=500)
    patient_condition: str = Field(min_length=5, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("required_by")
    @classmethod
    def validate_required_by(cls, value):
        if value < date.today():
            raise ValueError("Required by date cannot be in the past")
        return value

class BloodRequestUpdate(BaseModel):
    units_required: Optional[int] = Field(default=None, ge=1, le=10)
    urgency_level: Optional[UrgencyLevel] = None
    required_by: Optional[date] = None
    reason: Optional[str] = Field(default=None, min_length=10, max_length=500)
    patient_condition: Optional[str] = Field(default=None, min_length=5, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=500)

class RequestStatusUpdate(BaseModel):
    status: RequestStatus
    rejection_reason: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)

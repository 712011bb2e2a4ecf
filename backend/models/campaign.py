from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import BloodType, CampaignStatus, ParticipantStatus

class CampaignLocation(BaseModel):
    venue: str
    address: str
    city: str
    district: str

class Participant(BaseModel):
    donor_id: str
    registration_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: ParticipantStatus = ParticipantStatus.REGISTERED
    appointment_time: Optional[datetime] = None
    notes: Optional[str] = None

class CampaignResults(BaseModel):
    total_attendees: int = 0
    successful_donations: int = 0
    units_collected: int = 0

class Campaign(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    campaign_code: str = ""
    title: str
    description: str
    start_date: datetime
    end_date: datetime
    location: CampaignLocation
    organizer: str
    target_blood_types: List[BloodType] = []
    target_donors: int = 0
    participants: List[Participant] = []
    status: CampaignStatus = CampaignStatus.PLANNED
    results: CampaignResults = Field(default_factory=CampaignResults)
    is_public: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class CampaignCreate(BaseModel):
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    start_date: datetime
    end_date: datetime
    location: CampaignLocation
    target_blood_types: List[BloodType] = []
    target_donors: int = Field(default=0, ge=0)
    is_public: bool = True

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self

class CampaignUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[CampaignLocation] = None
    target_blood_types: Optional[List[BloodType]] = None
    target_donors: Optional[int] = Field(default=None, ge=0)
    status: Optional[CampaignStatus] = None
    is_public: Optional[bool] = None

class CampaignRegistration(BaseModel):
    donor_id: Optional[str] = None
    appointment_time: Optional[datetime] = None

class ParticipantStatusUpdate(BaseModel):
    status: ParticipantStatus
    notes: Optional[str] = Field(default=None, max_length=500)

class CampaignCompletion(BaseModel):
    units_collected: Optional[int] = Field(default=None, ge=0)

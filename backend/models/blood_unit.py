from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional
from datetime import datetime, timezone, date
import uuid
from .enums import BloodType, UnitStatus, TestResult, BloodComponent

class TestResults(BaseModel):
    hiv: TestResult = TestResult.PENDING
    hepatitis_b: TestResult = TestResult.PENDING
    hepatitis_c: TestResult = TestResult.PENDING
    syphilis: TestResult = TestResult.PENDING

class StorageLocation(BaseModel):
    section: Optional[str] = None
    shelf: Optional[str] = None
    position: Optional[str] = None

class BloodUnit(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    unit_code: str = ""
    blood_type: BloodType
    component: BloodComponent = BloodComponent.WHOLE_BLOOD
    units: int = 1
    collection_date: str
    expiry_date: str
    donor_id: str
    donation_id: Optional[str] = None
    status: UnitStatus = UnitStatus.AVAILABLE
    test_results: TestResults = Field(default_factory=TestResults)
    storage_location: StorageLocation = Field(default_factory=StorageLocation)
    reserved_for: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodUnitCreate(BaseModel):
    blood_type: BloodType
    component: BloodComponent = BloodComponent.WHOLE_BLOOD
    units: int = Field(default=1, ge=1, le=10)
    collection_date: date
    expiry_date: Optional[date] = None
    donor_id: str
    test_results: TestResults = Field(default_factory=TestResults)
    storage_location: StorageLocation = Field(default_factory=StorageLocation)
    notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def check_dates(self):
        if self.collection_date > date.today():
            raise ValueError("Collection date cannot be in the future")
        if self.expiry_date is not None and self.expiry_date <= self.collection_date:
            raise ValueError("Expiry date must be after collection date")
        return self

class BloodUnitUpdate(BaseModel):
    status: Optional[UnitStatus] = None
    test_results: Optional[TestResults] = None
    storage_location: Optional[StorageLocation] = None
    notes: Optional[str] = Field(default=None, max_length=500)

class ReserveRequest(BaseModel):
    blood_type: BloodType
    units: int = Field(ge=1, le=10)
    request_id: Optional[str] = None

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import NotificationType, NotificationPriority, ChannelStatus, BloodType, UrgencyLevel

class SMSChannel(BaseModel):
    sent: bool = False
    sent_at: Optional[str] = None
    phone: Optional[str] = None
    message_id: Optional[str] = None
    status: Optional[ChannelStatus] = None
    error: Optional[str] = None

class EmailChannel(BaseModel):
    sent: bool = False
    sent_at: Optional[str] = None
    email: Optional[str] = None
    status: Optional[ChannelStatus] = None
    error: Optional[str] = None

class InAppChannel(BaseModel):
    delivered: bool = False
    delivered_at: Optional[str] = None
    read: bool = False
    read_at: Optional[str] = None

class Channels(BaseModel):
    sms: SMSChannel = Field(default_factory=SMSChannel)
    email: EmailChannel = Field(default_factory=EmailChannel)
    in_app: InAppChannel = Field(default_factory=InAppChannel)

class Notification(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    recipient_id: str
    type: NotificationType
    title: str
    message: str
    data: dict = {}
    channels: Channels = Field(default_factory=Channels)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    scheduled_for: Optional[datetime] = None
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class NotificationCreate(BaseModel):
    recipient_id: str
    type: NotificationType
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    data: dict = {}
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: List[str] = ["in_app"]
    scheduled_for: Optional[datetime] = None

class NotificationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    message: Optional[str] = Field(default=None, min_length=1, max_length=500)
    priority: Optional[NotificationPriority] = None
    scheduled_for: Optional[datetime] = None
    is_active: Optional[bool] = None

class BulkNotificationCreate(BaseModel):
    recipient_ids: List[str] = Field(min_length=1)
    type: NotificationType
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    data: dict = {}
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: List[str] = ["in_app"]

class BloodTypeNotification(BaseModel):
    blood_types: List[BloodType] = Field(min_length=1)
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: List[str] = ["in_app"]
    eligible_only: bool = True

class EmergencyNotification(BaseModel):
    blood_type: BloodType
    units_needed: int = Field(ge=1)
    hospital_name: str
    urgency_level: UrgencyLevel = UrgencyLevel.CRITICAL
    contact_phone: Optional[str] = None

class DirectSMS(BaseModel):
    to: str
    message: str = Field(min_length=1, max_length=1600)

class DirectEmail(BaseModel):
    to: str
    subject: str = Field(min_length=1, max_length=200)
    html: str = Field(min_length=1)

from enum import Enum

class UserRole(str, Enum):
    ADMIN = "admin"
    HOSPITAL_STAFF = "hospital_staff"
    DONOR = "donor"
    RECIPIENT = "recipient"

class BloodType(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"

class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

class UnitStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    USED = "used"
    EXPIRED = "expired"

class TestResult(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    PENDING = "pending"

class BloodComponent(str, Enum):
    WHOLE_BLOOD = "whole_blood"
    RED_CELLS = "red_cells"
    PLATELETS = "platelets"
    PLASMA = "plasma"
    CRYOPRECIPITATE = "cryoprecipitate"

class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

class CampaignStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class ParticipantStatus(str, Enum):
    REGISTERED = "registered"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    DONATED = "donated"
    CANCELLED = "cancelled"

class DonationStatus(str, Enum):
    COLLECTED = "collected"
    TESTED = "tested"
    PROCESSED = "processed"
    STORED = "stored"
    DISCARDED = "discarded"

class NotificationType(str, Enum):
    APPOINTMENT_REMINDER = "appointment_reminder"
    ELIGIBILITY_UPDATE = "eligibility_update"
    CAMPAIGN_INVITATION = "campaign_invitation"
    BLOOD_REQUEST = "blood_request"
    LOW_STOCK_ALERT = "low_stock_alert"
    EXPIRY_ALERT = "expiry_alert"
    DONATION_THANKS = "donation_thanks"
    TEST_RESULTS = "test_results"
    EMERGENCY_REQUEST = "emergency_request"

class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class ChannelStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"

class HospitalPosition(str, Enum):
    DOCTOR = "doctor"
    NURSE = "nurse"
    LAB_TECHNICIAN = "lab_technician"
    BLOOD_BANK_OFFICER = "blood_bank_officer"
    ADMINISTRATOR = "administrator"

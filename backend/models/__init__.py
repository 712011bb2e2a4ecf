from .enums import (
    UserRole, BloodType, Gender, UnitStatus, TestResult, BloodComponent,
    UrgencyLevel, RequestStatus, CampaignStatus, ParticipantStatus,
    DonationStatus, NotificationType, NotificationPriority, ChannelStatus,
    HospitalPosition
)
from .user import (
    User, UserCreate, UserLogin, UserResponse, UserUpdate, ProfileUpdate,
    RefreshTokenRequest, ForgotPasswordRequest, ResetPasswordRequest,
    ChangePasswordRequest
)
from .donor import (
    Address, EmergencyContact, MedicalHistory, Donor, DonorCreate, DonorUpdate,
    PreScreening, Donation, DonationCreate, BulkDonorNotification
)
from .recipient import (
    TransfusionRecord, TransfusionCreate, Recipient, RecipientCreate,
    RecipientUpdate, MedicalStatusUpdate, ActiveStatusUpdate
)
from .hospital import (
    HospitalAddress, ContactInfo, StaffMember, Hospital, HospitalCreate,
    HospitalUpdate, StaffMemberCreate
)
from .blood_unit import (
    TestResults, StorageLocation, BloodUnit, BloodUnitCreate, BloodUnitUpdate,
    ReserveRequest
)
from .request import (
    Allocation, BloodRequest, BloodRequestCreate, BloodRequestUpdate,
    RequestStatusUpdate
)
from .campaign import (
    CampaignLocation, Participant, CampaignResults, Campaign, CampaignCreate,
    CampaignUpdate, CampaignRegistration, ParticipantStatusUpdate,
    CampaignCompletion
)
from .notification import (
    Channels, Notification, NotificationCreate, NotificationUpdate,
    BulkNotificationCreate, BloodTypeNotification, EmergencyNotification,
    DirectSMS, DirectEmail
)

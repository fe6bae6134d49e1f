from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

UserType = Literal["worker", "business"]
PaymentType = Literal["job_unlock", "job_boost", "wallet_topup"]
PaymentStatus = Literal["pending", "completed", "failed"]
ApplicationStatus = Literal["pending", "accepted", "rejected"]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything we write is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Users ---
class UserBase(BaseModel):
    name: str = Field(min_length=1)
    email: str
    phone: str
    user_type: UserType
    location: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _validate_email_like(cls, v: str) -> str:
        value = (v or "").strip()
        if "@" not in value:
            raise ValueError("email must contain '@'")
        left, right = value.split("@", 1)
        if not left or not right:
            raise ValueError("email must have text before and after '@'")
        return value


class UserCreate(UserBase):
    password: str = Field(min_length=1)


class User(UserCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    wallet_balance: int = 0
    created_at: UtcDatetime


class UserPublic(UserBase):
    """A user as returned over the API; the password never leaves the store."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    wallet_balance: int
    created_at: UtcDatetime


# --- Worker / Business profiles ---
class WorkerCreate(BaseModel):
    user_id: str
    skills: List[str] = []
    experience_level: str = "Beginner"

    @field_validator("skills")
    @classmethod
    def _skills_not_blank(cls, v: List[str]) -> List[str]:
        skills = [s.strip() for s in v]
        if any(not s for s in skills):
            raise ValueError("skills must be non-empty strings")
        return skills


class Worker(WorkerCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    completed_jobs: int = 0
    rating: int = 0  # tenths, 48 == 4.8


class BusinessCreate(BaseModel):
    user_id: str
    business_name: str = ""
    business_type: str = ""


class Business(BusinessCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str


# --- Jobs ---
class JobFields(BaseModel):
    title: str = Field(min_length=1)
    description: str
    work_type: str = Field(min_length=1)
    location: str = Field(min_length=1)
    duration: str
    salary: str
    workers_needed: int = Field(ge=1)
    contact_details: str


class JobCreate(JobFields):
    business_id: str


class Job(JobCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    is_boosted: bool = False
    boost_expires_at: Optional[UtcDatetime] = None
    is_active: bool = True
    created_at: UtcDatetime


class JobUpdate(BaseModel):
    """Partial update; only fields that are set get merged into the job."""

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    work_type: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = Field(default=None, min_length=1)
    duration: Optional[str] = None
    salary: Optional[str] = None
    workers_needed: Optional[int] = Field(default=None, ge=1)
    contact_details: Optional[str] = None
    is_active: Optional[bool] = None


class JobView(Job):
    """A job as a viewer sees it; workers get a redacted copy until they unlock it."""

    contact_details: Optional[str] = None
    is_unlocked: bool


class BusinessJob(Job):
    applications_count: int


# --- Applications ---
class JobApplication(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_id: str
    worker_id: str
    status: ApplicationStatus = "pending"
    applied_at: UtcDatetime


# --- Payments / unlocks ---
class PaymentCreate(BaseModel):
    user_id: str
    amount: int = Field(gt=0)
    type: PaymentType
    job_id: Optional[str] = None


class Payment(PaymentCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: PaymentStatus = "completed"
    created_at: UtcDatetime


class UnlockedJob(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    job_id: str
    unlocked_at: UtcDatetime


# --- Stats ---
class WorkerStats(BaseModel):
    completed_jobs: int
    rating: int
    rating_display: str
    available_jobs: int


class BusinessStats(BaseModel):
    active_jobs: int
    applications: int
    boosted_jobs: int
    completed_jobs: int


# --- Request payloads ---
class RegisterRequest(UserCreate):
    skills: List[str] = []
    experience_level: str = "Beginner"
    business_name: str = ""
    business_type: str = ""


class LoginRequest(BaseModel):
    email: str
    password: str


class JobPostRequest(JobFields):
    user_id: str
    boost: bool = False


class ApplyRequest(BaseModel):
    user_id: str


class JobPaymentRequest(BaseModel):
    user_id: str
    job_id: str


class TopUpRequest(BaseModel):
    user_id: str
    amount: int = Field(gt=0)


# --- Responses ---
class AuthResponse(BaseModel):
    user: UserPublic


class WorkerProfile(BaseModel):
    user: UserPublic
    worker: Worker
    stats: WorkerStats


class BusinessProfile(BaseModel):
    user: UserPublic
    business: Business
    stats: BusinessStats


class PaymentResult(BaseModel):
    payment: Payment
    message: str
